# -*- coding: utf-8 -*-
# SPDX-License-Identifier: MIT
"""
Scheduling configuration of a repository branch.

The configuration lives in ``.ci.yaml`` at the root of every tracked
repository. It is parsed fresh for every scheduling decision and the parsed
objects are never modified afterwards. A configuration with any error is
rejected as a whole, no part of it is ever scheduled.
"""

import re
import types

import yaml

from ci_scheduler import log
from ci_scheduler.common.errors import ConfigurationError
from ci_scheduler.utils.general import matches_any_glob


class SchedulerSystem(object):
    """
    Policy of the system triggering the builds of a target.

    :param str name: name of the system in ``.ci.yaml``.
    :param bool triggers_builds: the scheduler issues the initial builds.
    :param bool owns_retries: the scheduler issues the re-runs.
    """

    def __init__(self, name, triggers_builds, owns_retries):
        self.name = name
        self.triggers_builds = triggers_builds
        self.owns_retries = owns_retries

    def __repr__(self):
        return "<SchedulerSystem %s>" % self.name


COCOON = SchedulerSystem("cocoon", triggers_builds=True, owns_retries=True)
# The executor mirrors the commits and triggers the builds itself.
LUCI = SchedulerSystem("luci", triggers_builds=False, owns_retries=True)
# Built outside of our infrastructure, the results are only observed.
GOOGLE_INTERNAL = SchedulerSystem("google_internal", triggers_builds=False, owns_retries=False)

SCHEDULER_SYSTEMS = dict((system.name, system) for system in (COCOON, LUCI, GOOGLE_INTERNAL))

DEFAULT_TIMEOUT = 30
DEFAULT_TESTBED = "linux-vm"


def _frozen(mapping):
    return types.MappingProxyType(dict(mapping or {}))


class Target(object):
    """ A schedulable unit of work of a SchedulerConfig. """

    def __init__(self, name, dependencies=(), bringup=False, timeout=DEFAULT_TIMEOUT,
                 testbed=DEFAULT_TESTBED, properties=None, scheduler=COCOON,
                 presubmit=True, postsubmit=True, run_if=(), enabled_branches=(),
                 builder=None, recipe=None, tags=(), platform_properties=None):
        self.name = name
        self.dependencies = tuple(dependencies)
        self.bringup = bringup
        self.timeout = timeout
        self.testbed = testbed
        self.properties = _frozen(properties)
        self.scheduler = scheduler
        self.presubmit = presubmit
        self.postsubmit = postsubmit
        self.run_if = tuple(run_if)
        self.enabled_branches = tuple(enabled_branches)
        self.builder = builder or name
        self.recipe = recipe
        self.tags = tuple(tags)
        self.platform_properties = _frozen(platform_properties)

    def __repr__(self):
        return "<Target %s, scheduler %s>" % (self.name, self.scheduler.name)

    @property
    def platform(self):
        """ Lower-cased first word of the name, e.g. ``linux`` for ``Linux analyze``. """
        return self.name.split(" ", 1)[0].lower()

    def get_properties(self):
        """
        Returns the properties sent with every build of this target.

        The properties of the target's platform are overlaid with the target's
        own properties.
        """
        properties = dict(self.platform_properties)
        properties.update(self.properties)
        properties["bringup"] = self.bringup
        if self.dependencies:
            properties["dependencies"] = list(self.dependencies)
        if self.recipe:
            properties["recipe"] = self.recipe
        return properties

    def runs_on_branch(self, branch, enabled_branches):
        patterns = self.enabled_branches or enabled_branches
        return any(re.fullmatch(pattern, branch) for pattern in patterns)

    def runs_for_changes(self, changed_files):
        """
        :param list changed_files: paths touched by a pull request, None if unknown.
        :return: True if the target's ``run_if`` globs select the change.
        """
        if not self.run_if or changed_files is None:
            return True
        return matches_any_glob(changed_files, self.run_if)


class SchedulerConfig(object):
    """
    The targets, enabled branches and platform properties of ``.ci.yaml``.
    """

    def __init__(self, targets, enabled_branches=(), platform_properties=None):
        self.targets = tuple(targets)
        self.enabled_branches = tuple(enabled_branches)
        self.platform_properties = _frozen(platform_properties)
        self._targets_by_name = dict((target.name, target) for target in self.targets)

    def __repr__(self):
        return "<SchedulerConfig %d targets, branches %r>" % (
            len(self.targets), self.enabled_branches)

    def get_target(self, name):
        return self._targets_by_name.get(name)

    def dependents_of(self, name):
        """ Returns the targets depending directly on the target ``name``. """
        return [target for target in self.targets if name in target.dependencies]

    @classmethod
    def from_yaml(cls, text):
        try:
            data = yaml.safe_load(text)
        except yaml.YAMLError as e:
            raise ConfigurationError("Invalid YAML: %s" % e)
        return cls.from_dict(data)

    @classmethod
    def from_dict(cls, data):
        """
        Creates the SchedulerConfig from the parsed ``.ci.yaml``.

        Unknown fields are ignored.

        :raises ConfigurationError: if the configuration is invalid.
        """
        if not isinstance(data, dict):
            raise ConfigurationError("The scheduling configuration must be a mapping")

        enabled_branches = _get_list(data, "enabled_branches", "configuration")
        for pattern in enabled_branches:
            _check_branch_pattern(pattern)

        platform_properties = {}
        raw_platforms = data.get("platform_properties") or {}
        if not isinstance(raw_platforms, dict):
            raise ConfigurationError("platform_properties must be a mapping")
        for platform, values in raw_platforms.items():
            values = values or {}
            if not isinstance(values, dict) or not isinstance(values.get("properties", {}), dict):
                raise ConfigurationError(
                    "Properties of platform %r must be a mapping" % platform)
            platform_properties[str(platform).lower()] = dict(values.get("properties") or {})

        raw_targets = data.get("targets") or []
        if not isinstance(raw_targets, list):
            raise ConfigurationError("targets must be a list")

        targets = []
        names = set()
        for raw_target in raw_targets:
            target = _parse_target(raw_target, platform_properties)
            if target.name in names:
                raise ConfigurationError("Target %r is declared more than once" % target.name)
            names.add(target.name)
            targets.append(target)

        config = cls(targets, enabled_branches, platform_properties)
        config.validate()
        return config

    def validate(self):
        """ Checks the dependencies are declared targets and contain no cycle. """
        for target in self.targets:
            for dependency in target.dependencies:
                if dependency not in self._targets_by_name:
                    raise ConfigurationError(
                        "Target %r depends on unknown target %r" % (target.name, dependency))

        visiting, visited = set(), set()

        def visit(name, path):
            if name in visited:
                return
            if name in visiting:
                cycle = path[path.index(name):] + [name]
                raise ConfigurationError("Dependency cycle: %s" % " -> ".join(cycle))
            visiting.add(name)
            for dependency in self._targets_by_name[name].dependencies:
                visit(dependency, path + [name])
            visiting.discard(name)
            visited.add(name)

        for target in self.targets:
            visit(target.name, [])


def _check_branch_pattern(pattern):
    if not isinstance(pattern, str):
        raise ConfigurationError("Branch pattern %r must be a string" % (pattern,))
    try:
        re.compile(pattern)
    except re.error as e:
        raise ConfigurationError("Invalid branch pattern %r: %s" % (pattern, e))


def _get_list(data, key, where, *aliases):
    for name in (key,) + aliases:
        if name in data:
            value = data[name]
            break
    else:
        return []
    if value is None:
        return []
    if not isinstance(value, list):
        raise ConfigurationError("%s of %s must be a list" % (key, where))
    return value


def _get_bool(data, key, default, where):
    value = data.get(key, default)
    if not isinstance(value, bool):
        raise ConfigurationError("%s of %s must be true or false" % (key, where))
    return value


def _parse_tags(raw_tags, where):
    if raw_tags is None:
        return []
    if isinstance(raw_tags, dict):
        return [(str(key), str(value)) for key, value in raw_tags.items()]
    if isinstance(raw_tags, list):
        tags = []
        for tag in raw_tags:
            if not isinstance(tag, dict) or "key" not in tag:
                raise ConfigurationError("Tags of %s must have a key and a value" % where)
            tags.append((str(tag["key"]), str(tag.get("value", ""))))
        return tags
    raise ConfigurationError("tags of %s must be a mapping or a list" % where)


def _parse_target(raw, platform_properties):
    if not isinstance(raw, dict):
        raise ConfigurationError("Every target must be a mapping, got %r" % (raw,))

    name = raw.get("name")
    if not name or not isinstance(name, str):
        raise ConfigurationError("Target without a name: %r" % (raw,))
    where = "target %r" % name

    scheduler_name = raw.get("scheduler", COCOON.name)
    if scheduler_name not in SCHEDULER_SYSTEMS:
        raise ConfigurationError(
            "Unknown scheduler %r of %s, expected one of %s" % (
                scheduler_name, where, ", ".join(sorted(SCHEDULER_SYSTEMS))))

    timeout = raw.get("timeout", DEFAULT_TIMEOUT)
    if isinstance(timeout, bool) or not isinstance(timeout, int) or timeout < 1:
        raise ConfigurationError("timeout of %s must be a positive number of minutes" % where)

    properties = raw.get("properties") or {}
    if not isinstance(properties, dict):
        raise ConfigurationError("properties of %s must be a mapping" % where)

    dependencies = _get_list(raw, "dependencies", where)
    enabled_branches = _get_list(raw, "enabled_branches", where)
    for pattern in enabled_branches:
        _check_branch_pattern(pattern)

    target = Target(
        name=name,
        dependencies=[str(dependency) for dependency in dependencies],
        bringup=_get_bool(raw, "bringup", False, where),
        timeout=timeout,
        testbed=str(raw.get("testbed") or DEFAULT_TESTBED),
        properties=properties,
        scheduler=SCHEDULER_SYSTEMS[scheduler_name],
        presubmit=_get_bool(raw, "presubmit", True, where),
        postsubmit=_get_bool(raw, "postsubmit", True, where),
        run_if=[str(glob) for glob in _get_list(raw, "run_if", where, "runIf")],
        enabled_branches=enabled_branches,
        builder=raw.get("builder"),
        recipe=raw.get("recipe"),
        tags=_parse_tags(raw.get("tags"), where),
        platform_properties=platform_properties.get(name.split(" ", 1)[0].lower()),
    )
    return target


def resolve_targets(config, branch, presubmit=False, changed_files=None):
    """
    Selects the targets of ``config`` to schedule for a branch.

    :param SchedulerConfig config: the parsed configuration.
    :param str branch: branch of the commit or base branch of the pull request.
    :param bool presubmit: resolve for a pull request instead of a landed commit.
    :param list changed_files: paths touched by the pull request. If None, the
        ``run_if`` globs of the targets are not applied.
    :return: the matching targets, in configuration order.
    :rtype: list[Target]
    """
    targets = []
    for target in config.targets:
        if not target.runs_on_branch(branch, config.enabled_branches):
            continue
        if presubmit:
            if not target.presubmit or target.bringup:
                continue
            if not target.runs_for_changes(changed_files):
                log.debug("Skipping %r, no changed path matches %r", target, target.run_if)
                continue
        elif not target.postsubmit:
            continue
        targets.append(target)
    return targets


def get_presubmit_targets(config, branch, changed_files=None):
    return resolve_targets(config, branch, presubmit=True, changed_files=changed_files)


def get_postsubmit_targets(config, branch):
    return resolve_targets(config, branch, presubmit=False)


class CiYamlLoader(object):
    """ Loads the scheduling configuration of a repository at a revision. """

    def __init__(self, conf, github):
        self.conf = conf
        self.github = github

    def load(self, slug, sha):
        """
        :param RepositorySlug slug: the repository.
        :param str sha: revision to read the configuration at.
        :rtype: SchedulerConfig
        :raises ConfigurationError: if the configuration is invalid.
        """
        log.debug("Loading %s of %s@%s", self.conf.ci_yaml_path, slug, sha)
        text = self.github.get_file_content(slug, self.conf.ci_yaml_path, sha)
        return SchedulerConfig.from_yaml(text)
