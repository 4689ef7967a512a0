"""Lending market ``getLoanPreview()`` call encoding and decoding.

The lending market exposes:

.. code-block:: text

    function getLoanPreview(
        uint256 loanId,
        uint256 timestamp
    ) external view returns (tuple(uint256 periodIndex, uint256 trackedBalance, uint256 outstandingBalance) preview)

The signature never changes, so instead of loading a contract ABI file
we keep a fixed encoder/decoder pair here:

- :py:func:`encode_loan_preview_call` turns :py:class:`LoanPreviewArgs` into call data

- :py:func:`decode_loan_preview` turns the raw ``eth_call`` return data into :py:class:`LoanPreview`

``timestamp`` is always passed as zero. The contract then uses the timestamp
of the block the call is evaluated at.
"""

from dataclasses import dataclass
from typing import Final

import eth_abi
from eth_abi.exceptions import DecodingError
from eth_abi import is_encodable_type
from eth_utils import encode_hex, function_signature_to_4byte_selector
from hexbytes import HexBytes

from loan_inspector import LoanInspectorError


#: Solidity function signature used to compute the selector
GET_LOAN_PREVIEW_SIGNATURE: Final[str] = "getLoanPreview(uint256,uint256)"

#: Input argument types of ``getLoanPreview()``
GET_LOAN_PREVIEW_INPUT_TYPES: Final[tuple[str, ...]] = ("uint256", "uint256")

#: Return type of ``getLoanPreview()``, a single static tuple
GET_LOAN_PREVIEW_OUTPUT_TYPES: Final[tuple[str, ...]] = ("(uint256,uint256,uint256)",)

#: Let the contract resolve the timestamp of the evaluated block
CURRENT_BLOCK_TIMESTAMP: Final[int] = 0


class LoanPreviewDecodeError(LoanInspectorError):
    """Return data of ``getLoanPreview()`` could not be decoded."""


@dataclass(slots=True, frozen=True)
class LoanPreviewArgs:
    """Input arguments of ``getLoanPreview()``."""

    #: Loan id in the lending market
    loan_id: int

    #: Always zero in our use
    timestamp: int = CURRENT_BLOCK_TIMESTAMP


@dataclass(slots=True, frozen=True)
class LoanPreview:
    """Decoded ``getLoanPreview()`` return tuple.

    All values are raw uint256 values as Python ints.
    """

    #: Index of the loan period the preview was calculated for
    period_index: int

    #: Tracked balance of the loan
    tracked_balance: int

    #: Outstanding balance of the loan
    outstanding_balance: int


def _compute_selector() -> bytes:
    return function_signature_to_4byte_selector(GET_LOAN_PREVIEW_SIGNATURE)


def check_loan_preview_abi():
    """Check the fixed function signature once at startup.

    - The selector must be 4 bytes

    - The argument types in the signature must match the types we encode

    - All types must be known to the ABI codec

    :raise RuntimeError:
        If the built-in ABI definition is broken
    """
    selector_text = GET_LOAN_PREVIEW_SIGNATURE[GET_LOAN_PREVIEW_SIGNATURE.find("(") + 1 : GET_LOAN_PREVIEW_SIGNATURE.rfind(")")]
    arg_types = tuple(selector_text.split(","))
    if arg_types != GET_LOAN_PREVIEW_INPUT_TYPES:
        raise RuntimeError(f"Signature {GET_LOAN_PREVIEW_SIGNATURE} does not match input types {GET_LOAN_PREVIEW_INPUT_TYPES}")

    for abi_type in GET_LOAN_PREVIEW_INPUT_TYPES + GET_LOAN_PREVIEW_OUTPUT_TYPES:
        if not is_encodable_type(abi_type):
            raise RuntimeError(f"Unknown ABI type {abi_type} in {GET_LOAN_PREVIEW_SIGNATURE}")

    selector = _compute_selector()
    if len(selector) != 4:
        raise RuntimeError(f"Bad function selector for {GET_LOAN_PREVIEW_SIGNATURE}: {selector.hex()}")


check_loan_preview_abi()

#: ``getLoanPreview(uint256,uint256)`` 4-byte function selector
GET_LOAN_PREVIEW_SELECTOR: Final[bytes] = _compute_selector()


def encode_loan_preview_call(args: LoanPreviewArgs) -> HexBytes:
    """Encode ``getLoanPreview()`` call data.

    Example:

    .. code-block:: python

        data = encode_loan_preview_call(LoanPreviewArgs(loan_id=1))
        request_param = {"to": contract_address, "input": encode_hex(data)}

    :param args:
        Loan id and timestamp

    :return:
        Function selector + ABI encoded arguments
    """
    assert isinstance(args, LoanPreviewArgs), f"Got {type(args)}"
    assert args.loan_id >= 0, f"Loan id cannot be negative: {args.loan_id}"
    encoded_args = eth_abi.encode(list(GET_LOAN_PREVIEW_INPUT_TYPES), [args.loan_id, args.timestamp])
    return HexBytes(GET_LOAN_PREVIEW_SELECTOR + encoded_args)


def decode_loan_preview(data: str | bytes) -> LoanPreview:
    """Decode raw ``getLoanPreview()`` return data.

    :param data:
        ``0x`` prefixed hex string from JSON-RPC ``result`` or raw bytes

    :return:
        Decoded preview

    :raise LoanPreviewDecodeError:
        If the payload is not hex or does not hold the return tuple
    """
    try:
        raw = HexBytes(data)
    except (ValueError, TypeError) as e:
        raise LoanPreviewDecodeError(f"getLoanPreview() result is not hex data: {data!r}") from e

    try:
        (preview_tuple,) = eth_abi.decode(list(GET_LOAN_PREVIEW_OUTPUT_TYPES), raw)
    except DecodingError as e:
        raise LoanPreviewDecodeError(f"Could not decode getLoanPreview() result of {len(raw)} bytes: {encode_hex(raw)}") from e

    period_index, tracked_balance, outstanding_balance = preview_tuple
    return LoanPreview(
        period_index=period_index,
        tracked_balance=tracked_balance,
        outstanding_balance=outstanding_balance,
    )


def decode_loan_preview_call(data: str | bytes) -> LoanPreviewArgs:
    """Decode ``getLoanPreview()`` call data back to its arguments.

    Used by test nodes and for debugging captured requests.

    :raise LoanPreviewDecodeError:
        If the selector does not match or the arguments cannot be decoded
    """
    raw = HexBytes(data)
    if raw[0:4] != GET_LOAN_PREVIEW_SELECTOR:
        raise LoanPreviewDecodeError(f"Not a getLoanPreview() call: {encode_hex(raw)}")

    try:
        loan_id, timestamp = eth_abi.decode(list(GET_LOAN_PREVIEW_INPUT_TYPES), raw[4:])
    except DecodingError as e:
        raise LoanPreviewDecodeError(f"Could not decode getLoanPreview() arguments: {encode_hex(raw)}") from e

    return LoanPreviewArgs(loan_id=loan_id, timestamp=timestamp)
