from datetime import datetime
from pathlib import Path

import pytest

from conftest import FakeRunner

from clipmerge.executor import WORKDIR_PREFIX, MergeCancelled, MergeError, MergeExecutor, Stage
from clipmerge.planner import plan_group
from clipmerge.records import ClipRecord
from clipmerge.title import TitleRenderer


def _clip(dirs, minute, width=640, height=360, audio=False):
    src, _ = dirs
    path = src / f"13-{minute:02d}-00_Garden_{minute:03d}.mp4"
    path.write_bytes(b"clip")
    return ClipRecord(path, datetime(2024, 10, 4, 13, minute, 0), 10.0, width, height, "30/1", audio)


def _executor(ctx, runner=None):
    runner = runner or FakeRunner(ctx.cancel)
    renderer = TitleRenderer("sans-serif", 24, (255, 255, 255), (0, 0, 0))
    return MergeExecutor(ctx, runner, renderer), runner


def _leftover_workdirs(out: Path):
    return [p for p in out.iterdir() if p.name.startswith(WORKDIR_PREFIX)]


def test_single_clip_is_transcoded_not_concatenated(dirs, make_ctx):
    ctx = make_ctx()
    executor, runner = _executor(ctx)
    plan = plan_group("Garden", [_clip(dirs, 1)], ctx.config.name_template)

    output = executor.merge(plan)

    assert output == dirs[1] / "Garden_2024-10-04.mp4"
    assert output.exists()
    final = runner.ffmpeg_calls[-1]
    assert "concat" not in final
    assert final[-3:] == ["-c", "copy", str(output.resolve())]
    assert runner.manifests == []
    assert _leftover_workdirs(dirs[1]) == []


def test_multiple_clips_use_manifest_in_capture_order(dirs, make_ctx):
    ctx = make_ctx()
    executor, runner = _executor(ctx)
    clips = [_clip(dirs, 30), _clip(dirs, 5), _clip(dirs, 17)]
    executor.merge(plan_group("Garden", clips, ctx.config.name_template))

    assert len(runner.manifests) == 1
    lines = runner.manifests[0].splitlines()
    assert len(lines) == 3
    assert [line.split("-")[-1] for line in lines] == ["241004130500.mkv'", "241004131700.mkv'", "241004133000.mkv'"]
    assert all(line.startswith("file '_bcm-combined-") for line in lines)
    final = runner.ffmpeg_calls[-1]
    assert final[final.index("-f") + 1] == "concat"


def test_no_audio_anywhere_when_group_is_silent(dirs, make_ctx):
    ctx = make_ctx()
    executor, runner = _executor(ctx)
    executor.merge(plan_group("Garden", [_clip(dirs, 1), _clip(dirs, 2)], ctx.config.name_template))

    for cmd in runner.ffmpeg_calls:
        assert "anullsrc=r=16000:cl=mono:n=32" not in cmd
        assert "aac" not in cmd
    combine = [c for c in runner.ffmpeg_calls if "-filter_complex" in c]
    assert all(c[c.index("-filter_complex") + 1].endswith("a=0[outv]") for c in combine)


def test_silent_track_added_to_titles_and_quiet_clips(dirs, make_ctx):
    ctx = make_ctx()
    executor, runner = _executor(ctx)
    loud = _clip(dirs, 1, audio=True)
    quiet = _clip(dirs, 2, audio=False)
    executor.merge(plan_group("Garden", [loud, quiet], ctx.config.name_template))

    titles = [c for c in runner.ffmpeg_calls if "-loop" in c]
    assert len(titles) == 2
    assert all("anullsrc=r=16000:cl=mono:n=32" in c and "-shortest" in c for c in titles)

    normalized = [c for c in runner.ffmpeg_calls if str(quiet.path) in c and "-filter_complex" not in c]
    assert len(normalized) == 1
    cmd = normalized[0]
    assert "anullsrc=r=16000:cl=mono:n=32" in cmd
    assert cmd[cmd.index("-c:v") + 1] == "copy"
    # the clip that already has audio goes straight into the combine step
    assert not any(str(loud.path) in c and "-filter_complex" not in c for c in runner.ffmpeg_calls)
    combine = [c for c in runner.ffmpeg_calls if "-filter_complex" in c]
    assert all("[outa]" in c for c in combine)


def test_narrower_clip_is_scaled_to_target(dirs, make_ctx):
    ctx = make_ctx(encoder={"preset": "fast"})
    executor, runner = _executor(ctx)
    big = _clip(dirs, 1, 1920, 1080)
    small = _clip(dirs, 2, 1280, 720)
    executor.merge(plan_group("Garden", [big, small], ctx.config.name_template))

    normalized = [c for c in runner.ffmpeg_calls if str(small.path) in c and "-filter_complex" not in c]
    assert len(normalized) == 1
    cmd = normalized[0]
    assert cmd[cmd.index("-vf") + 1] == "scale=1920:1080"
    assert cmd[cmd.index("-c:v") + 1] == "libx265"
    assert cmd[cmd.index("-preset") + 1] == "fast"
    assert "-an" in cmd


def test_title_image_matches_target_size(dirs, make_ctx):
    from PIL import Image

    ctx = make_ctx()
    executor, runner = _executor(ctx)
    seen = []

    def grab_title(r, cmd):
        if "-loop" in cmd:
            image = Path(r.calls[-1]["cwd"]) / cmd[cmd.index("-i") + 1]
            with Image.open(image) as img:
                seen.append(img.size)

    runner.on_call = grab_title
    executor.merge(plan_group("Garden", [_clip(dirs, 1, 1280, 720), _clip(dirs, 2, 1920, 1080)], ctx.config.name_template))
    assert seen == [(1920, 1080), (1920, 1080)]


def test_encoder_failure_is_fatal_and_cleans_up(dirs, make_ctx):
    ctx = make_ctx()
    executor, runner = _executor(ctx)
    runner.fail_when = lambda cmd: "-filter_complex" in cmd
    clip = _clip(dirs, 1)

    with pytest.raises(MergeError) as info:
        executor.merge(plan_group("Garden", [clip], ctx.config.name_template))

    assert info.value.camera == "Garden"
    assert info.value.stage is Stage.COMBINE
    assert info.value.source == clip.path
    assert "Garden" in str(info.value)
    assert _leftover_workdirs(dirs[1]) == []


def test_finalize_failure_is_fatal(dirs, make_ctx):
    ctx = make_ctx()
    executor, runner = _executor(ctx)
    runner.fail_when = lambda cmd: "concat" in cmd
    with pytest.raises(MergeError) as info:
        executor.merge(plan_group("Garden", [_clip(dirs, 1), _clip(dirs, 2)], ctx.config.name_template))
    assert info.value.stage is Stage.FINALIZE
    assert _leftover_workdirs(dirs[1]) == []


def test_existing_output_needs_overwrite(dirs, make_ctx):
    (dirs[1] / "Garden_2024-10-04.mp4").write_bytes(b"old")
    ctx = make_ctx()
    executor, runner = _executor(ctx)
    with pytest.raises(MergeError):
        executor.merge(plan_group("Garden", [_clip(dirs, 1)], ctx.config.name_template))
    assert runner.calls == []

    ctx = make_ctx(overwrite=True)
    executor, runner = _executor(ctx)
    executor.merge(plan_group("Garden", [_clip(dirs, 1)], ctx.config.name_template))
    assert "-y" in runner.ffmpeg_calls[-1]


def test_cancel_after_second_clip_stops_encoder_calls(dirs, make_ctx):
    ctx = make_ctx()
    executor, runner = _executor(ctx)
    clips = [_clip(dirs, m) for m in range(1, 6)]

    def cancel_after_clip_two(r, cmd):
        if "-filter_complex" in cmd and len([c for c in r.ffmpeg_calls if "-filter_complex" in c]) == 2:
            r.cancel.cancel()

    runner.on_call = cancel_after_clip_two
    with pytest.raises(MergeCancelled):
        executor.merge(plan_group("Garden", clips, ctx.config.name_template))

    assert len(runner.ffmpeg_calls) == 4  # title + combine for clips 1 and 2
    assert _leftover_workdirs(dirs[1]) == []
    assert not (dirs[1] / "Garden_2024-10-04.mp4").exists()


def test_command_sequence_is_reproducible(dirs, make_ctx):
    ctx = make_ctx(overwrite=True)
    clips = [_clip(dirs, 3, 1280, 720, audio=True), _clip(dirs, 1), _clip(dirs, 2, 1920, 1080)]

    sequences = []
    for _ in range(2):
        executor, runner = _executor(ctx)
        executor.merge(plan_group("Garden", clips, ctx.config.name_template))
        sequences.append([c["cmd"] for c in runner.calls])
    assert sequences[0] == sequences[1]
    assert _leftover_workdirs(dirs[1]) == []
