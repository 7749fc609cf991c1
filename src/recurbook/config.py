import copy
import json
import os

DEFAULTS = {
    'sync': {
        'trailing_days': 7,
        'leading_days': 7,
    },
    'auto_note': 'Auto-generated from recurrence',
    'default_duration': 60,
}


def _config_path():
    base = os.path.join(os.path.expanduser('~'), '.recurbook')
    os.makedirs(base, exist_ok=True)
    return os.path.join(base, 'recurbook_config.json')


def _merge(base: dict, override: dict) -> dict:
    out = copy.deepcopy(base)
    for key, val in override.items():
        if isinstance(val, dict) and isinstance(out.get(key), dict):
            out[key] = _merge(out[key], val)
        else:
            out[key] = val
    return out


def load_config(path: str = None):
    path = path or _config_path()
    if not os.path.exists(path):
        return copy.deepcopy(DEFAULTS)
    try:
        with open(path, 'r', encoding='utf-8') as f:
            data = json.load(f)
    except (OSError, ValueError):
        return copy.deepcopy(DEFAULTS)
    if not isinstance(data, dict):
        return copy.deepcopy(DEFAULTS)
    return _merge(DEFAULTS, data)


def save_config(cfg: dict, path: str = None):
    path = path or _config_path()
    with open(path, 'w', encoding='utf-8') as f:
        json.dump(cfg, f, ensure_ascii=False, indent=2)
