from setuptools import setup, find_packages

with open('requirements.txt') as f:
    requirements = f.readlines()

with open('test-requirements.txt') as f:
    test_requirements = f.readlines()

setup(name='ci-scheduler',
      description='Schedules presubmit and postsubmit CI builds and reports them to GitHub',
      version='1.0.0',
      classifiers=[
          "Programming Language :: Python :: 3",
          "Topic :: Software Development :: Build Tools"
      ],
      keywords='ci scheduler buildbucket github checks backfill',
      author='FIXME',
      author_email='FIXME',
      license='MIT',
      python_requires='>=3.8',
      packages=find_packages(exclude=['tests', 'tests.*']),
      include_package_data=True,
      zip_safe=False,
      install_requires=requirements,
      tests_require=test_requirements,
      extras_require={'test': test_requirements},
      data_files=[('/etc/ci-scheduler/', ['conf/config.py'])],
      )
