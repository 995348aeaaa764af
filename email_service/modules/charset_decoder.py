"""
Charset Decoder
Maps a declared MIME charset onto a Python codec and decodes part payloads

Decoding never raises: undecodable bytes are replaced and unknown charsets
fall back to UTF-8, so one badly labelled part cannot abort a fetch.
"""

import logging
from types import MappingProxyType
from typing import Optional, Union


logger = logging.getLogger(__name__)

# Charsets that need no conversion
PASSTHROUGH_CHARSETS = frozenset({"", "utf-8", "utf8", "us-ascii", "ascii"})


def _build_charset_table():
    table = {}

    # ISO-8859-1..16 (there is no ISO-8859-12)
    for n in range(1, 17):
        if n == 12:
            continue
        table[f"iso-8859-{n}"] = f"iso8859_{n}"
        table[f"iso8859-{n}"] = f"iso8859_{n}"
        table[f"iso_8859-{n}"] = f"iso8859_{n}"
    table["latin1"] = "latin_1"
    table["latin-1"] = "latin_1"

    for n in range(1250, 1259):
        table[f"windows-{n}"] = f"cp{n}"
        table[f"cp{n}"] = f"cp{n}"

    table.update({
        "koi8-r": "koi8_r",
        "koi8-u": "koi8_u",
        "gbk": "gbk",
        "gb2312": "gb2312",
        "gb18030": "gb18030",
        "big5": "big5",
        "euc-jp": "euc_jp",
        "iso-2022-jp": "iso2022_jp",
        "shift_jis": "shift_jis",
        "shift-jis": "shift_jis",
        "sjis": "shift_jis",
        "euc-kr": "euc_kr",
        "utf-16": "utf_16",
        "utf-16be": "utf_16_be",
        "utf-16le": "utf_16_le",
    })
    return MappingProxyType(table)


CHARSET_CODECS = _build_charset_table()


def normalize_charset(charset: Optional[str]) -> str:
    """Lower-case and strip quoting from a Content-Type charset parameter"""
    if not charset:
        return ""
    return str(charset).strip().strip('"\'').lower()


def is_supported_charset(charset: Optional[str]) -> bool:
    name = normalize_charset(charset)
    return name in PASSTHROUGH_CHARSETS or name in CHARSET_CODECS


def decode_text(data: Union[bytes, str, None], charset: Optional[str] = None) -> str:
    """
    Decode a MIME part payload to text

    Args:
        data: Raw payload bytes. A str is assumed to be decoded already
            and is returned unchanged.
        charset: Declared charset name, may be None or unknown

    Returns:
        Decoded text; never raises for bad input
    """
    if data is None:
        return ""
    if isinstance(data, str):
        return data

    name = normalize_charset(charset)

    if name in PASSTHROUGH_CHARSETS:
        return data.decode("utf-8", errors="replace")

    codec = CHARSET_CODECS.get(name)
    if codec is None:
        logger.debug(f"Unknown charset {name!r}; passing content through as UTF-8")
        return data.decode("utf-8", errors="replace")

    try:
        return data.decode(codec, errors="replace")
    except (LookupError, UnicodeError) as e:
        logger.warning(f"Decoding with charset {name!r} failed ({e}); falling back to UTF-8")
        return data.decode("utf-8", errors="replace")


def recover_text(raw: bytes) -> str:
    """
    Last-resort decoding of an unparseable message

    Valid UTF-8 is returned as is; anything else is read as ISO-8859-1,
    which maps every byte and therefore always succeeds.
    """
    if isinstance(raw, str):
        return raw
    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError:
        return raw.decode("latin_1")
