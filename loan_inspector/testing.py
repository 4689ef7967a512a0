"""Synthetic JSON-RPC node for unit tests.

Answers ``getLoanPreview()`` batch requests without a real chain.

Example:

.. code-block:: python

    session = create_synthetic_node_session(lambda block, loan_id: LoanPreview(1, loan_id * 100, 0))
    outcome = dispatch_batches(session, "http://localhost:8545", requests, batch_size=2)

"""

from typing import Callable
from unittest.mock import Mock

import eth_abi
import requests
import ujson
from eth_utils import encode_hex

from loan_inspector.abi import GET_LOAN_PREVIEW_OUTPUT_TYPES, LoanPreview, decode_loan_preview_call

#: Creates a preview for ``(serialised block tag, loan id)``
PreviewFactory = Callable[[str, int], LoanPreview]

#: Modifies the list of reply items of a batch before it is sent back
ReplyMangler = Callable[[list[dict]], list[dict]]


def encode_loan_preview_result(preview: LoanPreview) -> str:
    """Encode ``getLoanPreview()`` return data the way a node returns it in ``result``."""
    encoded = eth_abi.encode(
        list(GET_LOAN_PREVIEW_OUTPUT_TYPES),
        [(preview.period_index, preview.tracked_balance, preview.outstanding_balance)],
    )
    return encode_hex(encoded)


def deterministic_preview(block_param: str, loan_id: int) -> LoanPreview:
    """A preview that depends only on the block and the loan.

    - Tracked balance is ``loan_id * 1000 + block number``, ``latest`` counts as block 0
    """
    block_number = int(block_param, 16) if block_param.startswith("0x") else 0
    return LoanPreview(
        period_index=block_number // 100,
        tracked_balance=loan_id * 1000 + block_number,
        outstanding_balance=loan_id,
    )


def answer_batch(batch: list[dict], preview_factory: PreviewFactory = deterministic_preview) -> list[dict]:
    """Create JSON-RPC reply items for a batch of ``eth_call`` requests."""
    replies = []
    for item in batch:
        assert item["method"] == "eth_call", f"Unsupported method: {item['method']}"
        call_params, block_param = item["params"]
        args = decode_loan_preview_call(call_params["input"])
        preview = preview_factory(block_param, args.loan_id)
        replies.append({"jsonrpc": "2.0", "id": item["id"], "result": encode_loan_preview_result(preview)})
    return replies


def create_json_response(data, status_code: int = 200) -> requests.Response:
    """Create a :py:class:`requests.Response` with a JSON body."""
    response = requests.Response()
    response.status_code = status_code
    response._content = b"" if data is None else ujson.dumps(data).encode("utf-8")
    return response


def create_synthetic_node_session(
    preview_factory: PreviewFactory = deterministic_preview,
    mangle: ReplyMangler | None = None,
) -> Mock:
    """Create a mocked :py:class:`requests.Session` that acts as a JSON-RPC node.

    - Every ``post()`` is answered with one reply item per request item

    - Sent batches are recorded in ``session.sent_batches``

    :param preview_factory:
        Creates the returned preview for each call

    :param mangle:
        Reorder, drop or corrupt the reply items of each batch
    """
    session = Mock(spec=requests.Session)
    session.sent_batches = []

    def _post(url, data=None, headers=None, **kwargs):
        batch = ujson.loads(data)
        session.sent_batches.append(batch)
        replies = answer_batch(batch, preview_factory)
        if mangle is not None:
            replies = mangle(replies)
        return create_json_response(replies)

    session.post.side_effect = _post
    return session
