"""
Structural Address Codec

Encodes an element's position as an XPath-like path and resolves it again in a
later rendering of the document.

    //*[@id="main"]               element carrying an id
    //*[@id="main"]/p[2]          second <p> under the element with id "main"
    /html/body/div[3]/p[1]        ordinal path from the document root

Ordinals are 1-based and count same-tag siblings only. Decoding never raises:
an index that is out of range in the current document means "not found".
"""
import logging
import re
from typing import List, Optional, Tuple

from cliptrace.locator.errors import AddressDecodeError
from cliptrace.locator.text_index import TextLeaf, tag_name

logger = logging.getLogger(__name__)

ROOT_TOKEN = "/html/body"

_ID_PREFIX = re.compile(r'^//\*\[@id="(?P<id>.+?)"\]')
_STEP = re.compile(r'^(?P<tag>[a-zA-Z][\w:.-]*)\[(?P<index>\d+)\]$')


def encode_address(node) -> Optional[str]:
    """
    Address of an element (or of the element owning a text leaf).

    Returns None for detached elements and for anything outside <body>,
    since the path could never be resolved from the root token.
    """
    element = node.parent if isinstance(node, TextLeaf) else node
    if element is None or not tag_name(element):
        return None

    segments = []
    curr = element
    prefix = None

    while curr is not None:
        element_id = curr.get('id')
        if element_id:
            prefix = f'//*[@id="{element_id}"]'
            break
        if tag_name(curr) == 'body':
            prefix = ROOT_TOKEN
            break

        parent = curr.getparent()
        if parent is None:
            return None

        index = 1
        sibling = curr.getprevious()
        while sibling is not None:
            if tag_name(sibling) == tag_name(curr):
                index += 1
            sibling = sibling.getprevious()
        segments.append(f"{tag_name(curr)}[{index}]")
        curr = parent

    if prefix is None:
        return None
    return "/".join([prefix] + list(reversed(segments)))


def parse_address(address: str) -> Tuple[Optional[str], List[Tuple[str, int]]]:
    """
    Split an address into (anchor_id, steps).

    anchor_id is None for root-token addresses. Raises AddressDecodeError on
    anything that is not an address this codec produces.
    """
    if not address or not isinstance(address, str):
        raise AddressDecodeError("Empty address")

    anchor_id = None
    id_match = _ID_PREFIX.match(address)
    if id_match:
        anchor_id = id_match.group('id')
        rest = address[id_match.end():]
    elif address.startswith(ROOT_TOKEN):
        rest = address[len(ROOT_TOKEN):]
    else:
        raise AddressDecodeError(f"Unsupported address: {address}")

    if rest and not rest.startswith('/'):
        raise AddressDecodeError(f"Malformed address: {address}")

    steps = []
    for raw_step in rest.split('/')[1:] if rest else []:
        step_match = _STEP.match(raw_step)
        if not step_match:
            raise AddressDecodeError(f"Malformed step '{raw_step}' in {address}")
        index = int(step_match.group('index'))
        if index < 1:
            raise AddressDecodeError(f"Ordinal must be 1-based in {address}")
        steps.append((step_match.group('tag').lower(), index))

    return anchor_id, steps


def _find_body(root):
    document_root = root.getroottree().getroot()
    if tag_name(document_root) == 'body':
        return document_root
    if tag_name(document_root) != 'html':
        return None
    return next((child for child in document_root if tag_name(child) == 'body'), None)


def decode_address(root, address: str):
    """
    Resolve an address against the document containing root.

    Returns the element, or None when the address is malformed, the id is gone,
    or any level's ordinal is out of range.
    """
    try:
        anchor_id, steps = parse_address(address)
    except AddressDecodeError as e:
        logger.debug(f"Address not decodable: {e}")
        return None

    if root is None:
        return None

    if anchor_id is not None:
        matches = root.getroottree().xpath('//*[@id=$anchor]', anchor=anchor_id)
        if not matches:
            logger.debug(f"No element with id '{anchor_id}' in current document")
            return None
        current = matches[0]
    else:
        current = _find_body(root)
        if current is None:
            return None

    for tag, index in steps:
        same_tag = [child for child in current if tag_name(child) == tag]
        if index > len(same_tag):
            logger.debug(f"Address step {tag}[{index}] out of range (have {len(same_tag)})")
            return None
        current = same_tag[index - 1]

    return current
