import os, yaml, pathlib, re
from dotenv import load_dotenv

def _merge(a, b):
    if not isinstance(b, dict): return a
    out = a.copy()
    for k, v in b.items():
        if isinstance(v, dict) and isinstance(out.get(k), dict):
            out[k] = _merge(out[k], v)
        elif v is not None:
            out[k] = v
    return out

def _split_paths(raw):
    return [p for p in raw.split(os.pathsep) if p.strip()]

def _env_paths(name):
    return _split_paths(os.getenv(name, ""))

def load_configs():
    load_dotenv(override=True)
    root = pathlib.Path(os.getenv("HOTDIR_ROOT", ".hotdir"))
    watch_yml = root / "config" / "watch.yml"
    cfg = {
        "watch": {
            "paths": _env_paths("HOTDIR_PATHS"),
            "observer": os.getenv("HOTDIR_OBSERVER", "native"),  # native | polling
            "poll_interval_sec": 1.0,
            "max_pending_events": 512,
        },
        "logging": {"level": os.getenv("HOTDIR_LOG_LEVEL", "INFO")},
    }
    if watch_yml.exists():
        cfg = _merge(cfg, yaml.safe_load(watch_yml.read_text(encoding="utf-8")) or {})
    cfg = _expand_env_vars(cfg)
    watch = cfg.get("watch")
    if isinstance(watch, dict) and isinstance(watch.get("paths"), str):  # "paths: /srv/drop" or a pathsep-joined ${VAR}
        watch["paths"] = _split_paths(watch["paths"])
    cfg["_root"] = str(root)
    return cfg

_ENV_VAR_PATTERN = re.compile(r"\$\{([A-Z0-9_]+)(?::-([^}]*))?\}")  # ${VAR} or ${VAR:-default}

def _env_value(m):
    value = os.getenv(m.group(1))
    if value is not None:
        return value
    return m.group(2) if m.group(2) is not None else m.group(0)

def _expand_env_vars(obj):
    if isinstance(obj, dict):
        return {k: _expand_env_vars(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_expand_env_vars(v) for v in obj]
    if isinstance(obj, str):
        return _ENV_VAR_PATTERN.sub(_env_value, obj)
    return obj
