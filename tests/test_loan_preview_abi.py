"""getLoanPreview() call encoding and result decoding."""

import eth_abi
import pytest
from eth_utils import encode_hex
from web3 import Web3

from loan_inspector import abi
from loan_inspector.abi import (
    GET_LOAN_PREVIEW_SELECTOR,
    LoanPreview,
    LoanPreviewArgs,
    LoanPreviewDecodeError,
    check_loan_preview_abi,
    decode_loan_preview,
    decode_loan_preview_call,
    encode_loan_preview_call,
)
from loan_inspector.testing import encode_loan_preview_result


def test_selector():
    """Selector is the first 4 bytes of the signature keccak."""
    assert GET_LOAN_PREVIEW_SELECTOR == Web3.keccak(text="getLoanPreview(uint256,uint256)")[0:4]
    assert len(GET_LOAN_PREVIEW_SELECTOR) == 4


def test_encode_call():
    """Call data is selector + loan id + zero timestamp."""
    data = encode_loan_preview_call(LoanPreviewArgs(loan_id=12345))
    assert len(data) == 4 + 32 + 32
    assert data[0:4] == GET_LOAN_PREVIEW_SELECTOR
    assert int.from_bytes(data[4:36], "big") == 12345
    assert data[36:68] == b"\x00" * 32


def test_encode_call_decode_call():
    """Call data decodes back to the arguments."""
    args = LoanPreviewArgs(loan_id=2**130)
    assert decode_loan_preview_call(encode_loan_preview_call(args)) == args
    assert decode_loan_preview_call(encode_hex(encode_loan_preview_call(args))) == args


def test_decode_call_wrong_selector():
    data = b"\x12\x34\x56\x78" + eth_abi.encode(["uint256", "uint256"], [1, 0])
    with pytest.raises(LoanPreviewDecodeError):
        decode_loan_preview_call(data)


def test_decode_preview():
    """Synthetic return data decodes to the values we put in."""
    preview = LoanPreview(period_index=7, tracked_balance=2**200 + 1, outstanding_balance=3)
    result = encode_loan_preview_result(preview)
    assert result.startswith("0x")
    assert decode_loan_preview(result) == preview


def test_decode_preview_raw_bytes():
    raw = eth_abi.encode(["uint256", "uint256", "uint256"], [1, 2, 3])
    assert decode_loan_preview(raw) == LoanPreview(1, 2, 3)


@pytest.mark.parametrize(
    "result",
    [
        "0x",
        encode_hex(eth_abi.encode(["uint256", "uint256"], [1, 2])),
        "0xzz",
        None,
    ],
)
def test_decode_preview_malformed(result):
    """Empty, truncated and non-hex results are decode errors."""
    with pytest.raises(LoanPreviewDecodeError):
        decode_loan_preview(result)


def test_check_abi():
    check_loan_preview_abi()


def test_check_abi_broken_signature(monkeypatch):
    """Signature and encoded types must agree."""
    monkeypatch.setattr(abi, "GET_LOAN_PREVIEW_SIGNATURE", "getLoanPreview(uint256,address)")
    with pytest.raises(RuntimeError):
        check_loan_preview_abi()
