"""Platform codes, their sheet synonyms and display labels."""

PLATFORM_CODES = ("yt", "yts", "tw", "ig", "tt", "igr", "sv", "pc", "vc", "bl")
DEFAULT_PLATFORM = "yt"

_SYNONYMS = {
    "yt": "yt",
    "youtube": "yt",
    "youtube_long": "yt",
    "yts": "yts",
    "youtube_short": "yts",
    "youtube_shorts": "yts",
    "tw": "tw",
    "twitter": "tw",
    "x": "tw",
    "x_twitter": "tw",
    "ig": "ig",
    "instagram": "ig",
    "tt": "tt",
    "tiktok": "tt",
    "igr": "igr",
    "instagram_reel": "igr",
    "instagram_reels": "igr",
    "sv": "sv",
    "short_video": "sv",
    "short_videos": "sv",
    "pc": "pc",
    "podcast": "pc",
    "podcasts": "pc",
    "vc": "vc",
    "voicy": "vc",
    "bl": "bl",
    "blog": "bl",
}

PLATFORM_LABELS = {
    "yt": "YouTube",
    "yts": "ショート動画",
    "tw": "X（Twitter）",
    "ig": "Instagram",
    "tt": "ショート動画",
    "igr": "ショート動画",
    "sv": "ショート動画",
    "pc": "Podcast",
    "vc": "Voicy",
    "bl": "Blog",
}

SHORT_VIDEO_CODES = frozenset({"yts", "tt", "igr", "sv"})


def coerce_platform(raw) -> str | None:
    """Map a sheet value to a platform code, or None when unknown."""
    if raw is None:
        return None
    return _SYNONYMS.get(str(raw).strip().lower())


def normalize_platform(raw) -> str:
    """Map a sheet value to a platform code, defaulting to YouTube."""
    return coerce_platform(raw) or DEFAULT_PLATFORM


def platform_label(raw) -> str:
    code = coerce_platform(raw)
    if code:
        return PLATFORM_LABELS[code]
    value = str(raw or "").strip()
    lower = value.lower()
    if "youtube" in lower:
        return "YouTube"
    if lower in ("x", "twitter") or "twitter" in lower:
        return "X/Twitter"
    return value or "Unknown"


def is_short_video(raw) -> bool:
    return coerce_platform(raw) in SHORT_VIDEO_CODES
