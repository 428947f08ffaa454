import argparse
import json
import sys
from pathlib import Path

from print_bridge import __version__
from print_bridge.config.manager import ConfigManager, default_config_path
from print_bridge.errors import BridgeError
from print_bridge.printers.cpcl import CPCL_ENCODINGS, encode_cpcl, extract_cpcl_bitmap
from print_bridge.printers.drivers import SystemPrintBackend
from print_bridge.printers.raster import rasterize
from print_bridge.printers.zpl import ZPL_COMPRESSIONS, decode_graphic_field, encode_zpl, validate_zpl


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='print-bridge',
        description='WMS Print Bridge CLI',
        formatter_class=argparse.RawDescriptionHelpFormatter
    )
    parser.add_argument('--version', action='version', version=f'%(prog)s {__version__}')
    subparsers = parser.add_subparsers(dest='command', help='Available commands')

    # Command to start the server
    start_parser = subparsers.add_parser('start', help='Start the print bridge')
    start_parser.add_argument('--host', type=str, help='Address to listen on (default: server.host)')
    start_parser.add_argument('--port', type=int, help='Port to listen on (default: server.port)')
    start_parser.add_argument('--config', type=str, help='Path to config.toml')

    # Command to list printers
    subparsers.add_parser('printers', help='List printers known to the OS')

    # Command to show or update configuration
    config_parser = subparsers.add_parser('config', help='Manage configuration settings')
    config_parser.add_argument('--config', type=str, help='Path to config.toml')
    config_parser.add_argument('--show', action='store_true', help='Show effective configuration')
    config_parser.add_argument('--set', metavar='KEY=VALUE', action='append', default=[],
                               help='Set a value using dot notation, e.g. server.port=20001')

    # Command to encode an image to a label command
    encode_parser = subparsers.add_parser('encode', help='Encode an image as a CPCL or ZPL command')
    encode_parser.add_argument('image', type=str, help='Image file')
    encode_parser.add_argument('--format', choices=('cpcl', 'zpl'), default='zpl')
    encode_parser.add_argument('--width', type=int, help='Width in dots')
    encode_parser.add_argument('--height', type=int, help='Height in dots')
    encode_parser.add_argument('--threshold', type=int, default=128, help='Gray cutoff 0-255')
    encode_parser.add_argument('--invert', action='store_true', help='Print light pixels')
    encode_parser.add_argument('--compression', choices=ZPL_COMPRESSIONS, default='z64',
                               help='ZPL graphic data compression')
    encode_parser.add_argument('--encoding', choices=CPCL_ENCODINGS, default='hex',
                               help='CPCL bitmap encoding')
    encode_parser.add_argument('--output', '-o', type=str, help='Write the command here (default: stdout)')
    encode_parser.add_argument('--verify', action='store_true',
                               help='Decode the command again and compare with the bitmap')

    return parser


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command == 'start':
        from print_bridge.main import main as start_main
        start_main(args.config, args.host, args.port)
    elif args.command == 'printers':
        list_printers()
    elif args.command == 'config':
        manage_config(args)
    elif args.command == 'encode':
        sys.exit(encode_image(args))
    else:
        parser.print_help()


def list_printers():
    """Print the printers the OS reports"""
    printers = SystemPrintBackend().enumerate_printers()
    if not printers:
        print("No printers found.")
        return
    for printer in printers:
        marker = '*' if printer.is_default else ' '
        print(f" {marker} {printer.name:<40} {printer.status:<8} {printer.description}")


def manage_config(args):
    """Manage configuration settings"""
    config_manager = ConfigManager(args.config)
    if config_manager.config_file is None:
        config_manager.config_file = default_config_path()

    updates = {}
    for item in args.set:
        key, sep, value = item.partition('=')
        if not sep or not key:
            print(f"Invalid setting {item!r}, expected KEY=VALUE", file=sys.stderr)
            sys.exit(2)
        config_manager.set(key.strip(), _parse_value(value.strip()), save=False)
        updates[key.strip()] = value.strip()

    if updates:
        config_manager.save_config()
        print("\n✓ Configuration updated successfully!")
        for key, value in updates.items():
            print(f"  {key}: {value}")

    if args.show or not updates:
        print("\n=== Current Configuration ===")
        state = '' if config_manager.exists() else ' (not created yet, showing defaults)'
        print(f"Configuration file: {config_manager.config_file}{state}")
        for section, values in config_manager.effective().items():
            print(f"\n[{section}]")
            if isinstance(values, dict):
                for key, value in values.items():
                    print(f"  {key} = {json.dumps(value, ensure_ascii=False)}")
            else:
                print(f"  {json.dumps(values, ensure_ascii=False)}")


def _parse_value(value: str):
    """Interpret a command line value as JSON where possible (numbers, booleans, lists)."""
    try:
        return json.loads(value)
    except ValueError:
        return value


def encode_image(args) -> int:
    """Rasterize an image file and write the label command. Returns an exit status."""
    path = Path(args.image)
    try:
        data = path.read_bytes()
    except OSError as e:
        print(f"Cannot read {path}: {e}", file=sys.stderr)
        return 1

    try:
        bitmap = rasterize(data, args.width, args.height, invert=args.invert,
                           threshold=args.threshold)
        if args.format == 'cpcl':
            command = encode_cpcl(bitmap, encoding=args.encoding)
        else:
            command = encode_zpl(bitmap, compression=args.compression)

        if args.verify:
            if args.format == 'cpcl':
                decoded = extract_cpcl_bitmap(command.payload)
            else:
                zpl = command.payload.decode('ascii')
                if not validate_zpl(zpl):
                    print("✗ Verification failed: not a complete ^XA...^XZ label", file=sys.stderr)
                    return 1
                decoded = decode_graphic_field(zpl)
            if decoded != bitmap.data:
                print("✗ Verification failed: decoded bitmap differs", file=sys.stderr)
                return 1
            print("✓ Verified: command decodes to the original bitmap", file=sys.stderr)
    except BridgeError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if args.output:
        Path(args.output).write_bytes(command.payload)
        print(f"✓ Wrote {len(command)} bytes ({bitmap}) to {args.output}", file=sys.stderr)
    else:
        sys.stdout.buffer.write(command.payload)
        sys.stdout.buffer.flush()
    return 0


if __name__ == "__main__":
    main()
