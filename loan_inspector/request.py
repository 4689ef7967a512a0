"""Build ``eth_call`` JSON-RPC requests for every block tag and loan id combination."""

from dataclasses import dataclass
from typing import Iterable, TypeAlias

from eth_typing import HexAddress
from eth_utils import encode_hex

from loan_inspector.abi import LoanPreviewArgs, encode_loan_preview_call
from loan_inspector.block_tag import BlockTag, serialise_block_tag

#: A single JSON-RPC request item as it goes to the wire
RPCRequest: TypeAlias = dict

#: JSON-RPC ids start from this number
FIRST_REQUEST_ID = 1


@dataclass(slots=True, frozen=True)
class LoanPreviewRequest:
    """One ``getLoanPreview()`` call and what it was made for.

    :py:attr:`request_id` is the JSON-RPC id and the only thing
    we use to match a response back to this request.
    """

    #: JSON-RPC id, unique within the run
    request_id: int

    #: Block tag as it was given in the input
    block_tag: BlockTag

    #: Loan id as it was given in the input
    loan_id: int

    #: JSON-RPC payload
    rpc_request: RPCRequest

    def __repr__(self):
        return f"<LoanPreviewRequest #{self.request_id} loan {self.loan_id} at {self.block_tag}>"

    def get_curl_info(self, json_rpc_url: str = "$JSON_RPC_URL") -> str:
        """Get a curl command line to repeat this call manually."""
        call_params, block_param = self.rpc_request["params"]
        return f"""curl -X POST -H "Content-Type: application/json" \\
        --data '{{
          "jsonrpc": "2.0",
          "method": "eth_call",
          "params": [
            {{
              "to": "{call_params["to"]}",
              "input": "{call_params["input"]}"
            }},
            "{block_param}"
          ],
          "id": {self.request_id}
        }}' \\
        {json_rpc_url}"""


def create_eth_call_request(
    request_id: int,
    contract_address: HexAddress | str,
    data: bytes,
    block_tag: BlockTag,
) -> RPCRequest:
    """Create a raw ``eth_call`` JSON-RPC request item."""
    return {
        "method": "eth_call",
        "params": [
            {
                "to": contract_address,
                "input": encode_hex(data),
            },
            serialise_block_tag(block_tag),
        ],
        "id": request_id,
        "jsonrpc": "2.0",
    }


def prepare_requests(
    contract_address: HexAddress | str,
    block_tags: Iterable[BlockTag],
    loan_ids: Iterable[int],
) -> list[LoanPreviewRequest]:
    """Prepare ``getLoanPreview()`` calls for all block and loan combinations.

    - Outer loop goes over block tags, inner loop over loan ids

    - Request ids are assigned in the same order, starting from 1

    Example:

    .. code-block:: python

        requests = prepare_requests(address, [100, "latest"], [1, 2])
        assert [(r.block_tag, r.loan_id) for r in requests] == [(100, 1), (100, 2), ("latest", 1), ("latest", 2)]

    :param contract_address:
        Lending market contract

    :param block_tags:
        Blocks to evaluate the calls at

    :param loan_ids:
        Loans to preview

    :return:
        Requests in the enumeration order
    """
    loan_ids = list(loan_ids)
    requests = []
    request_id = FIRST_REQUEST_ID
    for block_tag in block_tags:
        for loan_id in loan_ids:
            data = encode_loan_preview_call(LoanPreviewArgs(loan_id=loan_id))
            requests.append(
                LoanPreviewRequest(
                    request_id=request_id,
                    block_tag=block_tag,
                    loan_id=loan_id,
                    rpc_request=create_eth_call_request(request_id, contract_address, data, block_tag),
                )
            )
            request_id += 1
    return requests
