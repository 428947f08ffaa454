"""Built-in configuration defaults, used for any key missing from config.toml."""

DEFAULT_CONFIG = {
    'server': {
        'host': '127.0.0.1',
        'port': 20000,
        'serialize_jobs': True,
    },
    'logging': {
        'level': 'INFO',
        'file': '',
    },
    'printing': {
        'fallback_to_default': True,
        'submit_timeout': 0,
        'save_dir': '~/Documents',
        'label_width_mm': 50,
        'label_height_mm': 30,
        'label_dpi': 203,
        'label_keywords': ['label', '标签', 'hprt', 'tsc', 'zebra', 'dymo'],
    },
    'jobs': {
        'max_history': 500,
    },
}
