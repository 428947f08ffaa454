import sys

import toml

from print_bridge.config.defaults import DEFAULT_CONFIG


def generate_example_config(path='config.example.toml'):
    with open(path, 'w', encoding='utf-8') as f:
        toml.dump(DEFAULT_CONFIG, f)
    print(f"Wrote {path}")


if __name__ == "__main__":
    generate_example_config(*sys.argv[1:2])
