"""Configuration helpers for resolving app settings across sources."""

from collections.abc import Mapping
from typing import Any

DEFAULT_REVIEWERS = ("Aman", "Gayathri", "Piyush")
DEFAULT_APP_PASSWORD = "admin"
DEFAULT_REGION = "us-east-1"
DEFAULT_LOCAL_STORE_DIR = ".review_data"
DEFAULT_CHUNK_SIZE = 100


def normalize_api_base_url(raw: str | None) -> str:
    """Normalize user-provided review API base URL values."""
    if raw is None:
        return ""

    cleaned = str(raw).strip()
    if not cleaned:
        return ""

    cleaned = cleaned.rstrip("/")
    suffix = "/api"
    if cleaned.lower().endswith(suffix):
        cleaned = cleaned[: -len(suffix)]

    return cleaned.rstrip("/")


def get_nested(mapping: Mapping[str, Any] | None, path: tuple[str, ...]) -> Any:
    """Safely fetch a nested mapping value for a tuple path."""
    current: Any = mapping
    for key in path:
        if not isinstance(current, Mapping):
            return None
        current = current.get(key)
    return current


def _clean_candidate(value: Any) -> str:
    if value is None:
        return ""
    out = str(value).strip()
    return out


def _resolve_value(candidates: list[tuple[str, Any]]) -> tuple[str, str]:
    for source, raw in candidates:
        value = _clean_candidate(raw)
        if value:
            return value, source
    return "", "missing"


def _as_maps(
    session: Mapping[str, Any] | None,
    secrets: Mapping[str, Any] | None,
    env: Mapping[str, Any] | None,
) -> tuple[Mapping[str, Any], Mapping[str, Any], Mapping[str, Any]]:
    return (
        session if isinstance(session, Mapping) else {},
        secrets if isinstance(secrets, Mapping) else {},
        env if isinstance(env, Mapping) else {},
    )


def _parse_positive_int(raw: str, default: int) -> int:
    try:
        value = int(raw)
    except (TypeError, ValueError):
        return default
    return value if value > 0 else default


def resolve_storage_config(
    session: Mapping[str, Any] | None,
    secrets: Mapping[str, Any] | None,
    env: Mapping[str, Any] | None,
) -> dict[str, Any]:
    """Resolve where the review documents live (remote API, S3 bucket or local directory)."""
    session_map, secrets_map, env_map = _as_maps(session, secrets, env)

    api_url, api_source = _resolve_value(
        [
            ("session", session_map.get("review_api_url")),
            ("secrets", secrets_map.get("REVIEW_API_URL")),
            ("secrets", get_nested(secrets_map, ("review_api", "url"))),
            ("env", env_map.get("REVIEW_API_URL")),
        ]
    )
    bucket, bucket_source = _resolve_value(
        [
            ("secrets", secrets_map.get("S3_BUCKET_NAME")),
            ("secrets", get_nested(secrets_map, ("s3", "bucket_name"))),
            ("env", env_map.get("S3_BUCKET_NAME")),
        ]
    )
    folder, folder_source = _resolve_value(
        [
            ("secrets", secrets_map.get("S3_FOLDER_NAME")),
            ("secrets", get_nested(secrets_map, ("s3", "folder_name"))),
            ("env", env_map.get("S3_FOLDER_NAME")),
        ]
    )
    region, region_source = _resolve_value(
        [
            ("secrets", secrets_map.get("AWS_REGION")),
            ("secrets", get_nested(secrets_map, ("s3", "region"))),
            ("env", env_map.get("AWS_REGION")),
        ]
    )
    local_dir, local_source = _resolve_value(
        [
            ("secrets", secrets_map.get("LOCAL_STORE_DIR")),
            ("env", env_map.get("LOCAL_STORE_DIR")),
        ]
    )

    api_base_url = normalize_api_base_url(api_url)
    if api_base_url:
        backend = "api"
    elif bucket:
        backend = "s3"
    else:
        backend = "local"

    return {
        "backend": backend,
        "api_base_url": api_base_url,
        "bucket": bucket,
        "folder": folder,
        "region": region or DEFAULT_REGION,
        "local_dir": local_dir or DEFAULT_LOCAL_STORE_DIR,
        "sources": {
            "api_base_url": api_source,
            "bucket": bucket_source,
            "folder": folder_source,
            "region": region_source if region else "default",
            "local_dir": local_source if local_dir else "default",
        },
    }


def resolve_app_password(
    session: Mapping[str, Any] | None,
    secrets: Mapping[str, Any] | None,
    env: Mapping[str, Any] | None,
) -> dict[str, Any]:
    """Resolve application password from session, secrets, and environment sources."""
    session_map, secrets_map, env_map = _as_maps(session, secrets, env)

    password, source = _resolve_value(
        [
            ("session", session_map.get("app_password")),
            ("secrets", secrets_map.get("APP_PASSWORD")),
            ("secrets", get_nested(secrets_map, ("auth", "password"))),
            ("secrets", get_nested(secrets_map, ("auth", "APP_PASSWORD"))),
            ("secrets", secrets_map.get("password")),
            ("env", env_map.get("APP_PASSWORD")),
        ]
    )
    if not password:
        return {"password": DEFAULT_APP_PASSWORD, "source": "default"}

    return {"password": password, "source": source}


def resolve_reviewers(
    secrets: Mapping[str, Any] | None,
    env: Mapping[str, Any] | None,
) -> list[str]:
    """Resolve the reviewer names offered on the login screen."""
    _, secrets_map, env_map = _as_maps(None, secrets, env)

    raw = secrets_map.get("REVIEWERS") or get_nested(secrets_map, ("auth", "reviewers"))
    if isinstance(raw, (list, tuple)):
        names = [str(n).strip() for n in raw]
    else:
        value, _ = _resolve_value([("secrets", raw), ("env", env_map.get("REVIEWERS"))])
        names = [n.strip() for n in value.split(",")]

    out: list[str] = []
    for n in names:
        if n and n not in out:
            out.append(n)
    return out or list(DEFAULT_REVIEWERS)


def resolve_chunk_size(env: Mapping[str, Any] | None) -> int:
    env_map = env if isinstance(env, Mapping) else {}
    return _parse_positive_int(_clean_candidate(env_map.get("UPLOAD_CHUNK_SIZE")), DEFAULT_CHUNK_SIZE)
