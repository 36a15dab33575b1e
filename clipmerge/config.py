import argparse
import locale
import re
from dataclasses import dataclass, field, fields
from datetime import date
from pathlib import Path
from typing import Any, Dict, Tuple

import yaml
from PIL import ImageColor

from .naming import DATE_TEMPLATE, MONTH_TEMPLATE, FileNameTemplate


class ConfigError(ValueError):
    pass


@dataclass
class EncoderConfig:
    ffmpeg: str = "ffmpeg"
    ffprobe: str = "ffprobe"
    video_codec: str = "libx265"
    preset: str | None = None
    frame_rate: float = 25.0
    probe_timeout: float = 60.0  # 秒; 0 表示不限制


@dataclass
class TitleConfig:
    duration: int = 2
    font_family: str = "sans-serif"
    font_size: float = 144
    date_format: str = "%Y-%m-%d"
    time_format: str = "%H:%M:%S"
    foreground: str = "#ffffff"
    background: str = "#000000"
    foreground_rgb: Tuple[int, ...] = field(default=(255, 255, 255), init=False, repr=False)
    background_rgb: Tuple[int, ...] = field(default=(0, 0, 0), init=False, repr=False)


@dataclass
class FilterConfig:
    camera: str | None = None
    start_date: date | None = None
    end_date: date | None = None
    min_duration: float = 1.0  # 短于该值的片段视为损坏/过短
    camera_pattern: re.Pattern | None = field(default=None, init=False, repr=False)


@dataclass
class Config:
    input_dir: Path
    output_dir: Path
    quiet: bool = False
    verbose: bool = False
    overwrite: bool = False
    group_by_month: bool = False
    filename_template: str | None = None
    locale: str | None = None
    clip_extension: str = ".mp4"
    encoder: EncoderConfig = field(default_factory=EncoderConfig)
    title: TitleConfig = field(default_factory=TitleConfig)
    filters: FilterConfig = field(default_factory=FilterConfig)
    name_template: FileNameTemplate | None = field(default=None, init=False, repr=False)


# CLI dest -> (section, key)
_CLI_KEYS = {
    "quiet": (None, "quiet"),
    "verbose": (None, "verbose"),
    "overwrite": (None, "overwrite"),
    "group_by_month": (None, "group_by_month"),
    "filename_template": (None, "filename_template"),
    "locale": (None, "locale"),
    "clip_extension": (None, "clip_extension"),
    "ffmpeg": ("encoder", "ffmpeg"),
    "ffprobe": ("encoder", "ffprobe"),
    "video_codec": ("encoder", "video_codec"),
    "preset": ("encoder", "preset"),
    "frame_rate": ("encoder", "frame_rate"),
    "probe_timeout": ("encoder", "probe_timeout"),
    "title_duration": ("title", "duration"),
    "font_family": ("title", "font_family"),
    "font_size": ("title", "font_size"),
    "date_format": ("title", "date_format"),
    "time_format": ("title", "time_format"),
    "title_foreground": ("title", "foreground"),
    "title_background": ("title", "background"),
    "camera_filter": ("filters", "camera"),
    "start_date": ("filters", "start_date"),
    "end_date": ("filters", "end_date"),
    "min_duration": ("filters", "min_duration"),
}

_TOP_LEVEL_KEYS = {
    "quiet",
    "verbose",
    "overwrite",
    "group_by_month",
    "filename_template",
    "locale",
    "clip_extension",
    "encoder",
    "title",
    "filters",
}


def _iso_date(value: str) -> date:
    try:
        return date.fromisoformat(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"invalid date (expected YYYY-MM-DD): {value}") from exc


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="clipmerge",
        description="Merge surveillance camera clips into one titled video per camera and date",
    )
    parser.add_argument("input_dir", help="Path to the clips source directory")
    parser.add_argument("output_dir", help="Path to the video output directory")
    parser.add_argument("--config", default=None, help="Optional config.yaml; CLI flags take precedence")
    parser.add_argument("-q", "--quiet", action="store_true", default=None, help="Hide informational messages")
    parser.add_argument("-v", "--verbose", action="store_true", default=None, help="Log every encoder command")
    parser.add_argument("-y", "--overwrite", action="store_true", default=None, help="Overwrite existing output files")
    parser.add_argument(
        "-g",
        "--group-by-month",
        action="store_true",
        default=None,
        help="Merge clips per captured month instead of per date",
    )
    parser.add_argument("-m", "--ffmpeg", default=None, help="Path to the ffmpeg executable")
    parser.add_argument("-p", "--ffprobe", default=None, help="Path to the ffprobe executable")
    parser.add_argument(
        "-t",
        "--filename-template",
        default=None,
        help="Output name template with {camera} and {time:<strftime>} fields, e.g. {camera}_{time:%%Y-%%m-%%d}.mp4",
    )
    parser.add_argument("-f", "--camera-filter", default=None, help="Camera name regex filter")
    parser.add_argument("--start-date", type=_iso_date, default=None, help="Skip dates before YYYY-MM-DD")
    parser.add_argument("--end-date", type=_iso_date, default=None, help="Skip dates after YYYY-MM-DD")
    parser.add_argument("-r", "--frame-rate", type=float, default=None, help="Output video frame rate (default: 25)")
    parser.add_argument("-d", "--title-duration", type=int, default=None, help="Title clip duration in seconds (default: 2)")
    parser.add_argument("-c", "--video-codec", default=None, help="Video codec for outputs (default: libx265)")
    parser.add_argument("-s", "--preset", default=None, help="Video codec preset")
    parser.add_argument(
        "-i",
        "--min-duration",
        type=float,
        default=None,
        help="Ignore clips shorter than this many seconds (default: 1, 0 disables)",
    )
    parser.add_argument("--probe-timeout", type=float, default=None, help="ffprobe timeout in seconds (default: 60)")
    parser.add_argument("--clip-extension", default=None, help="Clip file extension (default: .mp4)")
    parser.add_argument("--locale", default=None, help="Locale used for date/time formatting in titles")
    parser.add_argument("--font-family", default=None, help="Title font family or font file (default: sans-serif)")
    parser.add_argument("--font-size", type=float, default=None, help="Title font size (default: 144)")
    parser.add_argument("--date-format", default=None, help="Title date strftime format (default: %%Y-%%m-%%d)")
    parser.add_argument("--time-format", default=None, help="Title time strftime format (default: %%H:%%M:%%S)")
    parser.add_argument("--title-foreground", default=None, help="Title text color (default: #ffffff)")
    parser.add_argument("--title-background", default=None, help="Title background color (default: #000000)")
    return parser


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    return build_parser().parse_args(argv)


def _load_yaml(path: Path) -> Dict[str, Any]:
    with path.open("r", encoding="utf-8") as f:
        raw = yaml.safe_load(f) or {}
    if not isinstance(raw, dict):
        raise ConfigError(f"Config file {path} must contain a mapping, got {type(raw).__name__}")
    unknown = set(raw) - _TOP_LEVEL_KEYS
    if unknown:
        raise ConfigError(f"Unknown option(s) in {path}: {', '.join(sorted(map(str, unknown)))}")
    return raw


def _section(cls, raw: Dict[str, Any], name: str):
    values = raw.get(name) or {}
    if not isinstance(values, dict):
        raise ConfigError(f"Section {name} must be a mapping")
    known = {f.name for f in fields(cls) if f.init}
    unknown = set(values) - known
    if unknown:
        raise ConfigError(f"Unknown {name} option(s): {', '.join(sorted(unknown))}")
    return cls(**values)


def load_config(args: argparse.Namespace) -> Config:
    raw: Dict[str, Any] = {}
    if getattr(args, "config", None):
        config_path = Path(args.config).expanduser()
        if not config_path.exists():
            raise ConfigError(f"Config file not found: {config_path}")
        try:
            raw = _load_yaml(config_path)
        except yaml.YAMLError as exc:
            raise ConfigError(f"Invalid config file {config_path}: {exc}") from exc

    try:
        cfg = Config(
            input_dir=Path(args.input_dir).expanduser(),
            output_dir=Path(args.output_dir).expanduser(),
            quiet=bool(raw.get("quiet", False)),
            verbose=bool(raw.get("verbose", False)),
            overwrite=bool(raw.get("overwrite", False)),
            group_by_month=bool(raw.get("group_by_month", False)),
            filename_template=raw.get("filename_template"),
            locale=raw.get("locale"),
            clip_extension=raw.get("clip_extension", ".mp4"),
            encoder=_section(EncoderConfig, raw, "encoder"),
            title=_section(TitleConfig, raw, "title"),
            filters=_section(FilterConfig, raw, "filters"),
        )
    except TypeError as exc:
        raise ConfigError(f"Invalid config value: {exc}") from exc

    for dest, (section, key) in _CLI_KEYS.items():
        value = getattr(args, dest, None)
        if value is None:
            continue
        target = cfg if section is None else getattr(cfg, section)
        setattr(target, key, value)

    validate_config(cfg)
    return cfg


def _parse_color(value: str, what: str) -> Tuple[int, ...]:
    try:
        return ImageColor.getrgb(value)
    except ValueError as exc:
        raise ConfigError(f"Invalid title {what} color: {value}") from exc


def _coerce_number(value: Any, what: str, cast=float):
    if isinstance(value, bool):
        raise ConfigError(f"Invalid {what}: {value}")
    try:
        return cast(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid {what}: {value!r}") from exc


def _coerce_date(value: Any, what: str) -> date | None:
    if value is None or isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value))
    except ValueError as exc:
        raise ConfigError(f"Invalid {what}: {value}") from exc


def validate_config(cfg: Config) -> None:
    if not cfg.input_dir.is_dir():
        raise ConfigError(f"Invalid input directory: {cfg.input_dir}")
    if not cfg.output_dir.is_dir():
        raise ConfigError(f"Invalid output directory: {cfg.output_dir}")
    cfg.title.duration = _coerce_number(cfg.title.duration, "title duration", int)
    cfg.title.font_size = _coerce_number(cfg.title.font_size, "font size")
    cfg.encoder.frame_rate = _coerce_number(cfg.encoder.frame_rate, "frame rate")
    cfg.encoder.probe_timeout = _coerce_number(cfg.encoder.probe_timeout, "probe timeout")
    cfg.filters.min_duration = _coerce_number(cfg.filters.min_duration, "minimum duration")
    if cfg.title.duration <= 0:
        raise ConfigError(f"Invalid title duration: {cfg.title.duration}")
    if cfg.encoder.frame_rate <= 0:
        raise ConfigError(f"Invalid frame rate: {cfg.encoder.frame_rate}")
    if cfg.title.font_size <= 0:
        raise ConfigError(f"Invalid font size: {cfg.title.font_size}")
    cfg.clip_extension = str(cfg.clip_extension)
    if not cfg.clip_extension.startswith("."):
        cfg.clip_extension = "." + cfg.clip_extension

    cfg.title.background_rgb = _parse_color(cfg.title.background, "background")
    cfg.title.foreground_rgb = _parse_color(cfg.title.foreground, "foreground")

    cfg.filters.start_date = _coerce_date(cfg.filters.start_date, "start date")
    cfg.filters.end_date = _coerce_date(cfg.filters.end_date, "end date")
    start, end = cfg.filters.start_date, cfg.filters.end_date
    if start is not None and end is not None and start > end:
        raise ConfigError(f"Invalid date range: {start} is after {end}")

    if cfg.filters.camera:
        try:
            cfg.filters.camera_pattern = re.compile(cfg.filters.camera)
        except re.error as exc:
            raise ConfigError(f"Invalid camera filter {cfg.filters.camera!r}: {exc}") from exc

    if not cfg.filename_template:
        cfg.filename_template = MONTH_TEMPLATE if cfg.group_by_month else DATE_TEMPLATE
    try:
        cfg.name_template = FileNameTemplate(cfg.filename_template)
    except ValueError as exc:
        raise ConfigError(f"Invalid file name template {cfg.filename_template!r}: {exc}") from exc


def apply_locale(name: str | None) -> None:
    """Switch LC_TIME so strftime month/day names follow the requested locale."""
    if not name:
        return
    try:
        locale.setlocale(locale.LC_TIME, name)
    except locale.Error as exc:
        raise ConfigError(f"Invalid locale: {name}") from exc
