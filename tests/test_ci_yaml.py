# -*- coding: utf-8 -*-
# SPDX-License-Identifier: MIT
import pytest
from mock import MagicMock

from ci_scheduler import ci_yaml
from ci_scheduler.ci_yaml import (
    CiYamlLoader,
    SchedulerConfig,
    get_postsubmit_targets,
    get_presubmit_targets,
    resolve_targets,
)
from ci_scheduler.common.errors import ConfigurationError

from tests import CI_YAML, SLUG, load_config


def names(targets):
    return [target.name for target in targets]


class TestParsing:
    def test_defaults(self):
        config = SchedulerConfig.from_dict({"targets": [{"name": "Linux A"}]})
        target = config.get_target("Linux A")
        assert target.bringup is False
        assert target.timeout == 30
        assert target.presubmit is True
        assert target.postsubmit is True
        assert target.scheduler is ci_yaml.COCOON
        assert target.testbed == "linux-vm"
        assert target.builder == "Linux A"
        assert target.dependencies == ()
        assert target.run_if == ()

    def test_unknown_fields_are_ignored(self):
        config = SchedulerConfig.from_dict({
            "some_future_field": 1,
            "targets": [{"name": "Linux A", "drone_dimensions": ["os=Linux"]}],
        })
        assert names(config.targets) == ["Linux A"]

    def test_sample_configuration(self):
        config = load_config()
        assert names(config.targets) == [
            "Linux analyze",
            "Linux framework_tests",
            "Mac build_tests",
            "Linux docs_publish",
            "Linux internal_perf",
        ]
        assert config.get_target("Linux analyze").timeout == 60
        assert config.get_target("Linux framework_tests").run_if == ("packages/flutter/**",)
        assert config.get_target("Mac build_tests").scheduler is ci_yaml.LUCI
        assert config.get_target("Linux internal_perf").scheduler is ci_yaml.GOOGLE_INTERNAL
        assert names(config.dependents_of("Linux analyze")) == ["Linux framework_tests"]

    @pytest.mark.parametrize("text", [
        "targets: [",
        "- just a list",
        "targets:\n  - timeout: 30\n",
        "targets:\n  - name: A\n  - name: A\n",
        "targets:\n  - name: A\n    scheduler: jenkins\n",
        "targets:\n  - name: A\n    dependencies: [B]\n",
        "targets:\n  - name: A\n    timeout: soon\n",
        "targets:\n  - name: A\n    bringup: maybe\n",
        "enabled_branches: ['(unclosed']\ntargets:\n  - name: A\n",
    ])
    def test_invalid_configuration_is_rejected(self, text):
        with pytest.raises(ConfigurationError):
            SchedulerConfig.from_yaml(text)

    def test_dependency_cycle_is_rejected(self):
        text = (
            "enabled_branches: [main]\n"
            "targets:\n"
            "  - name: A\n"
            "    dependencies: [C]\n"
            "  - name: B\n"
            "    dependencies: [A]\n"
            "  - name: C\n"
            "    dependencies: [B]\n"
        )
        with pytest.raises(ConfigurationError) as excinfo:
            SchedulerConfig.from_yaml(text)
        assert "cycle" in str(excinfo.value)

    def test_self_dependency_is_rejected(self):
        with pytest.raises(ConfigurationError):
            SchedulerConfig.from_dict({"targets": [{"name": "A", "dependencies": ["A"]}]})


class TestTarget:
    def test_platform(self):
        assert load_config().get_target("Mac build_tests").platform == "mac"

    def test_properties_overlay_platform_properties(self):
        target = load_config().get_target("Linux analyze")
        assert target.get_properties() == {
            "os": "Linux",
            "device_type": "none",
            "validation": "analyze",
            "bringup": False,
            "recipe": "flutter/flutter",
        }

    def test_target_properties_win(self):
        config = SchedulerConfig.from_dict({
            "platform_properties": {"linux": {"properties": {"os": "Linux", "cores": "8"}}},
            "targets": [{
                "name": "Linux big",
                "properties": {"cores": "32"},
                "dependencies": [],
            }],
        })
        properties = config.get_target("Linux big").get_properties()
        assert properties["cores"] == "32"
        assert properties["os"] == "Linux"

    def test_dependencies_are_in_properties(self):
        properties = load_config().get_target("Linux framework_tests").get_properties()
        assert properties["dependencies"] == ["Linux analyze"]

    def test_tags(self):
        config = SchedulerConfig.from_dict({"targets": [
            {"name": "A", "tags": {"devicelab": "true"}},
            {"name": "B", "tags": [{"key": "framework", "value": "true"}]},
        ]})
        assert config.get_target("A").tags == (("devicelab", "true"),)
        assert config.get_target("B").tags == (("framework", "true"),)

    def test_target_is_immutable_view(self):
        target = load_config().get_target("Linux analyze")
        with pytest.raises(TypeError):
            target.properties["validation"] = "docs"


class TestResolve:
    def test_postsubmit(self):
        config = load_config()
        assert names(get_postsubmit_targets(config, "main")) == [
            "Linux analyze",
            "Linux framework_tests",
            "Mac build_tests",
            "Linux docs_publish",
            "Linux internal_perf",
        ]

    def test_postsubmit_only_targets_with_postsubmit_flag(self):
        config = SchedulerConfig.from_dict({
            "enabled_branches": ["main"],
            "targets": [
                {"name": "A", "postsubmit": True},
                {"name": "B", "postsubmit": False},
            ],
        })
        assert names(resolve_targets(config, "main")) == ["A"]

    def test_release_branch(self):
        config = load_config()
        # docs_publish overrides the enabled branches with main only.
        assert "Linux docs_publish" not in names(
            get_postsubmit_targets(config, "flutter-3.7-candidate.1"))
        assert "Linux analyze" in names(
            get_postsubmit_targets(config, "flutter-3.7-candidate.1"))

    def test_branch_patterns_must_match_whole_branch(self):
        config = load_config()
        assert get_postsubmit_targets(config, "main-old") == []
        assert get_postsubmit_targets(config, "feature") == []

    def test_presubmit_excludes_bringup_and_postsubmit_only(self):
        config = load_config()
        targets = names(get_presubmit_targets(
            config, "main", changed_files=["packages/flutter/lib/widgets.dart"]))
        assert targets == ["Linux analyze", "Linux framework_tests"]

    @pytest.mark.parametrize("changed_files, included", [
        (["packages/flutter/lib/widgets.dart"], True),
        (["README.md", "packages/flutter/test/a_test.dart"], True),
        (["dev/bots/test.dart"], False),
        ([], False),
        (None, True),
    ])
    def test_presubmit_run_if(self, changed_files, included):
        config = load_config()
        targets = names(get_presubmit_targets(config, "main", changed_files=changed_files))
        assert ("Linux framework_tests" in targets) is included
        # Without run_if a target runs whatever the change touches.
        assert "Linux analyze" in targets


class TestCiYamlLoader:
    def test_load(self, conf):
        github = MagicMock()
        github.get_file_content.return_value = CI_YAML
        config = CiYamlLoader(conf, github).load(SLUG, "abc123")
        github.get_file_content.assert_called_once_with(SLUG, ".ci.yaml", "abc123")
        assert len(config.targets) == 5

    def test_load_invalid(self, conf):
        github = MagicMock()
        github.get_file_content.return_value = "targets:\n  - name: A\n    dependencies: [Z]\n"
        with pytest.raises(ConfigurationError):
            CiYamlLoader(conf, github).load(SLUG, "abc123")
