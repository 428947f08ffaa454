"""
Printer name resolution.

Clients rarely know the exact queue name the OS uses ("zebra" vs
"Zebra ZT230 (Copy 1)"), so a requested name is matched against the
enumerated printers in four tiers. Each tier scans the list in order and the
first hit wins; a lower tier always beats a higher one.
"""
import logging
import re
from typing import Iterable, List, Optional

logger = logging.getLogger(__name__)

_NOISE = re.compile(r'[\s\-_.]')


def printer_names(printers: Iterable) -> List[str]:
    """Names from Printer objects, dicts or plain strings, in list order."""
    names = []
    for printer in printers or []:
        if isinstance(printer, str):
            name = printer
        elif isinstance(printer, dict):
            name = printer.get('name') or printer.get('displayName') or printer.get('deviceName') or ''
        else:
            name = getattr(printer, 'name', '') or ''
        names.append(str(name))
    return names


def normalize_name(name: str) -> str:
    return _NOISE.sub('', name.lower())


def resolve_printer_name(query: Optional[str], printers: Iterable) -> Optional[str]:
    """
    Return the canonical name of the printer best matching ``query``, or None.

    Tiers:
      1. exact match, case-insensitive
      2. enumerated name contains the query
      3. query contains the enumerated name
      4. both normalized (no whitespace, '-', '_', '.'), containment either way
    """
    if query is None:
        return None
    query = str(query).strip()
    if not query:
        return None
    try:
        names = [n for n in printer_names(printers) if n]
    except Exception as e:
        logger.warning(f"Could not read printer list: {e}")
        return None
    if not names:
        return None

    wanted = query.lower()
    tiers = (
        ('exact', lambda name: name.lower() == wanted),
        ('substring', lambda name: wanted in name.lower()),
        ('reverse substring', lambda name: name.lower() in wanted),
    )
    for label, matches in tiers:
        for name in names:
            if matches(name):
                logger.debug(f"Printer {query!r} → {name!r} ({label} match)")
                return name

    wanted_norm = normalize_name(query)
    if wanted_norm:
        for name in names:
            name_norm = normalize_name(name)
            if name_norm and (wanted_norm in name_norm or name_norm in wanted_norm):
                logger.debug(f"Printer {query!r} → {name!r} (normalized match)")
                return name

    logger.info(f"No printer matches {query!r} among {names}")
    return None
