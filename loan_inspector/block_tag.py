"""Block tag and loan id input parsing.

Block tags and loan ids are given as free form text, e.g. pasted from a spreadsheet:

.. code-block:: text

    67600200
    70000000, latest

Any run of non-alphanumeric characters separates the items.
"""

import re
from typing import Final, TypeAlias

from loan_inspector import ConfigurationError

#: Block number or a symbolic block tag like ``latest``
BlockTag: TypeAlias = int | str

#: Symbolic block tags understood by JSON-RPC nodes
SYMBOLIC_BLOCK_TAGS: Final[frozenset[str]] = frozenset({"latest", "earliest", "pending", "safe", "finalized"})

_SEPARATOR_RE = re.compile(r"[^0-9a-zA-Z]+")

_DECIMAL_RE = re.compile(r"^[0-9]+$")

_HEX_RE = re.compile(r"^0[xX][0-9a-fA-F]+$")

#: Loan ids are passed to the contract as uint256
MAX_LOAN_ID: Final[int] = 2**256 - 1


def split_to_tokens(text: str) -> list[str]:
    """Split input on any run of non-alphanumeric characters.

    Empty tokens are discarded.
    """
    assert type(text) == str, f"Got {type(text)}"
    return [s for s in _SEPARATOR_RE.split(text) if s]


def parse_block_tag(token: str) -> BlockTag:
    """Convert one input token to a block tag.

    - Decimal digits are block numbers

    - ``0x`` prefixed hex is a block number as well

    - Known symbolic tags pass through in lowercase

    :raise ConfigurationError:
        Anything else
    """
    if _DECIMAL_RE.match(token):
        return int(token)

    if _HEX_RE.match(token):
        return int(token, 16)

    tag = token.lower()
    if tag in SYMBOLIC_BLOCK_TAGS:
        return tag

    raise ConfigurationError(f"Cannot parse block tag {token!r}. Use a block number or one of {sorted(SYMBOLIC_BLOCK_TAGS)}")


def parse_block_tags(text: str) -> list[BlockTag]:
    """Parse a whitespace or comma delimited block tag list."""
    return [parse_block_tag(token) for token in split_to_tokens(text)]


def parse_loan_ids(text: str) -> list[int]:
    """Parse a whitespace or comma delimited list of decimal loan ids.

    :raise ConfigurationError:
        If any of the items is not a decimal number or does not fit uint256
    """
    loan_ids = []
    for token in split_to_tokens(text):
        if not _DECIMAL_RE.match(token):
            raise ConfigurationError(f"Cannot parse loan id {token!r}, expected a decimal number")
        loan_id = int(token)
        if loan_id > MAX_LOAN_ID:
            raise ConfigurationError(f"Loan id {token} does not fit uint256")
        loan_ids.append(loan_id)
    return loan_ids


def serialise_block_tag(block_tag: BlockTag | None) -> str:
    """Convert a block tag to JSON-RPC ``eth_call`` block parameter.

    - ``None`` means ``latest``

    - Strings are passed verbatim

    - Block numbers as lowercase ``0x`` prefixed hex
    """
    if block_tag is None:
        return "latest"

    if isinstance(block_tag, str):
        return block_tag

    assert type(block_tag) == int, f"Bad block tag type {type(block_tag)}: {block_tag}"
    assert block_tag >= 0, f"Block number cannot be negative: {block_tag}"
    return hex(block_tag)
