from __future__ import annotations

import json
from pathlib import Path

import pytest
import yaml

import swiftdock.__main__ as cli
from swiftdock.engine import ExecutionRequest, RangeRequest


def _package(tmp_path: Path) -> Path:
    project = tmp_path / "Demo"
    project.mkdir()
    (project / "Package.swift").write_text("// swift-tools-version:5.5\n", encoding="utf-8")
    return project


def _tags_file(tmp_path: Path) -> Path:
    path = tmp_path / "tags.json"
    path.write_text(
        json.dumps(
            [
                {"name": "5.8", "digests": ["a"]},
                {"name": "5.9", "digests": ["b"]},
                {"name": "5.9-jammy", "digests": ["b"]},
                {"name": "latest", "digests": ["b"]},
            ]
        ),
        encoding="utf-8",
    )
    return path


def test_main_without_command_prints_help() -> None:
    assert cli.main([]) == 2


def test_single_command_builds_request(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    project = _package(tmp_path)
    captured: dict[str, object] = {}

    def fake_run_single_tag(request: ExecutionRequest, tag: str, config: object, **kwargs: object) -> int:
        captured["request"] = request
        captured["tag"] = tag
        captured["docker_path"] = kwargs["docker_path"]
        return 0

    monkeypatch.setattr(cli, "run_single_tag", fake_run_single_tag)

    code = cli.main(
        [
            "build",
            "--package-path", str(project),
            "--docker-path", "/opt/docker",
            "--tag", "5.9",
            "--repo-order", "swift;swiftlang/swift",
            "-e", "TOKEN=a=b",
            "-v", "/cache:/root/.cache",
            "--output-replace", str(project), "<pkg>",
            "--output-replace-x", r"\d+\.\d+s", "<time>",
            "--",
            "-c", "release",
        ]
    )

    assert code == 0
    request = captured["request"]
    assert isinstance(request, ExecutionRequest)
    assert captured["tag"] == "5.9"
    assert captured["docker_path"] == "/opt/docker"
    assert request.action.name == "build"
    assert request.package_name == "Demo"
    assert [str(candidate.repository) for candidate in request.candidates] == ["swift", "swiftlang/swift"]
    assert request.env == (("TOKEN", "a=b"),)
    assert [str(volume) for volume in request.volumes] == ["/cache:/root/.cache"]
    assert request.replacements == ((str(project), "<pkg>"),)
    assert request.regex_replacements[0][0].pattern == r"\d+\.\d+s"
    assert request.user_arguments == ("-c", "release")


def test_execute_package_is_rewritten(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    project = _package(tmp_path)
    captured: list[ExecutionRequest] = []
    monkeypatch.setattr(
        cli, "run_single_tag", lambda request, tag, config, **kwargs: captured.append(request) or 0
    )

    assert cli.main(["execute", "--package-path", str(project), "--docker-path", "d", "package", "update"]) == 0
    assert captured[0].action.name == "package"
    assert captured[0].user_arguments == ("update",)


def test_invalid_volume_is_reported(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    project = _package(tmp_path)

    code = cli.main(
        ["test", "--package-path", str(project), "--docker-path", "d", "-v", "/only-one"]
    )

    assert code == 1
    assert "swiftdock test: ERROR invalid volume mapping '/only-one'" in capsys.readouterr().err


def test_invalid_config_is_reported(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    project = _package(tmp_path)
    config_path = project / ".swiftdock" / "config.yaml"
    config_path.parent.mkdir()
    config_path.write_text(yaml.safe_dump({"execution": ["nope"]}), encoding="utf-8")

    assert cli.main(["run", "--package-path", str(project), "--docker-path", "d"]) == 1
    assert "swiftdock run: ERROR config section 'execution' must be a mapping" in capsys.readouterr().err


def test_range_command_filters_catalog_and_runs_engine(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    project = _package(tmp_path)
    tags = _tags_file(tmp_path)
    captured: dict[str, object] = {}

    class _Engine:
        def __init__(self, request: RangeRequest, config: object, **kwargs: object) -> None:
            captured["request"] = request
            captured["scratch"] = kwargs["scratch"]

        def run(self) -> int:
            return 1

    monkeypatch.setattr(cli, "RangeExecutionEngine", _Engine)

    code = cli.main(
        [
            "test-range",
            "--package-path", str(project),
            "--docker-path", "d",
            "--tags-file", str(tags),
            "--tag-exclude", "latest",
            "--tag-exclude-x=-jammy$",
            "--from", "5.8",
            "--through", "5.9",
            "--skip-identical-hashes",
            "--stop-on-first-error",
            "--no-tools-version-check",
            "--no-scratch",
            "--repo-order-first", "local/nightly:swift",
        ]
    )

    assert code == 1
    request = captured["request"]
    assert isinstance(request, RangeRequest)
    assert [tag.name for tag in request.catalog] == ["5.8", "5.9"]
    assert request.action.name == "test"
    assert request.from_tag == "5.8"
    assert request.through_tag == "5.9"
    assert request.to_tag is None
    assert request.skip_identical_hashes and request.stop_on_first_error
    assert request.detect_tools_version is False
    assert str(request.tools_version_image) == "swift:latest:swift"
    assert request.first_candidates[0].repository.is_local
    assert captured["scratch"].backend is None  # type: ignore[attr-defined]


def test_range_catalog_path_comes_from_config(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    project = _package(tmp_path)
    (project / "tags.json").write_text(json.dumps(["5.9", "5.10"]), encoding="utf-8")
    config_path = project / ".swiftdock" / "config.yaml"
    config_path.parent.mkdir()
    config_path.write_text(yaml.safe_dump({"catalog": {"path": "tags.json"}}), encoding="utf-8")
    captured: list[RangeRequest] = []

    class _Engine:
        def __init__(self, request: RangeRequest, config: object, **kwargs: object) -> None:
            captured.append(request)

        def run(self) -> int:
            return 0

    monkeypatch.setattr(cli, "RangeExecutionEngine", _Engine)

    assert cli.main(["build-range", "--package-path", str(project), "--docker-path", "d", "--no-scratch"]) == 0
    assert [tag.name for tag in captured[0].catalog] == ["5.10", "5.9"]


def test_range_without_catalog_is_an_error(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    project = _package(tmp_path)

    assert cli.main(["run-range", "--package-path", str(project), "--docker-path", "d"]) == 1
    assert "no tag catalog given" in capsys.readouterr().err


def test_to_and_through_are_mutually_exclusive(tmp_path: Path) -> None:
    with pytest.raises(SystemExit) as excinfo:
        cli.main(["build-range", "--to", "5.9", "--through", "5.9"])

    assert excinfo.value.code == 2


def test_tags_command_prints_filtered_catalog(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    project = _package(tmp_path)
    tags = _tags_file(tmp_path)

    code = cli.main(
        ["tags", "--package-path", str(project), "--tags-file", str(tags), "--similar-to", "5.9"]
    )

    assert code == 0
    assert capsys.readouterr().out.splitlines() == ["5.9-jammy", "latest"]

    assert cli.main(["tags", "--package-path", str(project), "--tags-file", str(tags), "--tag-filter", "9.9"]) == 1
    assert "No tags available with the given parameters" in capsys.readouterr().out



def test_join_command_passes_tag_and_bash_arguments(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    project = _package(tmp_path)
    captured: dict[str, object] = {}

    def fake_run_join(request: ExecutionRequest, tag: str, config: object, **kwargs: object) -> int:
        captured["request"] = request
        captured["tag"] = tag
        return 0

    monkeypatch.setattr(cli, "run_join", fake_run_join)

    code = cli.main(
        ["join", "--package-path", str(project), "--docker-path", "d", "--tag", "5.9", "--", "-l"]
    )

    assert code == 0
    assert captured["tag"] == "5.9"
    request = captured["request"]
    assert isinstance(request, ExecutionRequest)
    assert request.user_arguments == ("-l",)
    assert request.package_name == "Demo"
