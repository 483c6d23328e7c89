from pathlib import Path

import pytest

from probebuild.assemble import ArtifactAssembler
from probebuild.errors import ArtifactMergeError
from probebuild.models import Artifact, BuildTarget
from probebuild.targets import resolve_targets


def _artifact(tmp_path: Path, target: BuildTarget) -> Artifact:
    path = tmp_path / "build" / target.id / "bin" / target.binary_name("ffprobe")
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(f"binary:{target.id}", encoding="utf-8")
    return Artifact(target_id=target.id, platform=target.platform, arch=target.arch, path=path)


def _assembler(tmp_path: Path, runner) -> ArtifactAssembler:
    return ArtifactAssembler(
        artifacts_dir=tmp_path / "artifacts",
        binary_name="ffprobe",
        runner=runner,
    )


def test_universal_build_merges_into_single_binary(tmp_path: Path, fake_runner) -> None:
    targets = resolve_targets("macos", ["x64", "arm64"])
    outputs = [_artifact(tmp_path, target) for target in targets]

    final = _assembler(tmp_path, fake_runner).assemble("macos", outputs, targets)

    assert final == tmp_path / "artifacts" / "ffprobe"
    assert [path.name for path in (tmp_path / "artifacts").iterdir()] == ["ffprobe"]
    assert final.read_text(encoding="utf-8") == "universal:ffprobe-x64,ffprobe-arm64"
    (lipo,) = fake_runner.calls
    assert lipo.argv[:2] == ("lipo", "-create")
    assert lipo.argv[-2:] == ("-output", str(final))


def test_missing_arch_output_fails_merge(tmp_path: Path, fake_runner) -> None:
    targets = resolve_targets("macos", ["x64", "arm64"])
    outputs = [_artifact(tmp_path, targets[0])]

    with pytest.raises(ArtifactMergeError) as excinfo:
        _assembler(tmp_path, fake_runner).assemble("macos", outputs, targets)

    assert excinfo.value.context["missing"] == "macos-arm64"
    assert fake_runner.calls == []


def test_failed_merge_removes_staged_binaries(tmp_path: Path, fake_runner) -> None:
    fake_runner.fail_when("lipo")
    targets = resolve_targets("macos", ["x64", "arm64"])
    outputs = [_artifact(tmp_path, target) for target in targets]

    with pytest.raises(ArtifactMergeError):
        _assembler(tmp_path, fake_runner).assemble("macos", outputs, targets)

    assert list((tmp_path / "artifacts").iterdir()) == []


def test_single_target_is_copied_to_conventional_path(tmp_path: Path, fake_runner) -> None:
    targets = resolve_targets("windows", ["x64"])
    outputs = [_artifact(tmp_path, targets[0])]

    final = _assembler(tmp_path, fake_runner).assemble("windows", outputs, targets)

    assert final == tmp_path / "artifacts" / "ffprobe.exe"
    assert final.read_text(encoding="utf-8") == "binary:windows-x64"
    assert fake_runner.calls == []


def test_single_universal_arch_is_copied_not_merged(tmp_path: Path, fake_runner) -> None:
    targets = resolve_targets("macos", ["arm64"])
    outputs = [_artifact(tmp_path, targets[0])]

    final = _assembler(tmp_path, fake_runner).assemble("macos", outputs, targets)

    assert final == tmp_path / "artifacts" / "ffprobe"
    assert fake_runner.calls == []


def test_several_single_arch_targets_get_arch_directories(tmp_path: Path, fake_runner) -> None:
    targets = resolve_targets("windows", ["x64", "arm64"])
    outputs = [_artifact(tmp_path, target) for target in targets]

    root = _assembler(tmp_path, fake_runner).assemble("windows", outputs, targets)

    assert root == tmp_path / "artifacts"
    assert (root / "x64" / "ffprobe.exe").read_text(encoding="utf-8") == "binary:windows-x64"
    assert (root / "arm64" / "ffprobe.exe").read_text(encoding="utf-8") == "binary:windows-arm64"
