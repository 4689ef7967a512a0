"""Read loan inspector input parameters from environment variables.

.. list-table::
    :header-rows: 1

    * - Variable
      - Default
    * - ``LI_RPC_URL``
      - ``http://localhost:8545``
    * - ``LI_CONTRACT_ADDRESS``
      - ``0x0000000000000000000000000000000000000001``
    * - ``LI_BATCH_SIZE``
      - ``2``
    * - ``LI_BLOCK_NUMBERS_STRING``
      - ``67600200 70000000 80000000``
    * - ``LI_LOAN_IDS_STRING``
      - ``1 2 3``
    * - ``LI_OUTPUT_FILE``
      - ``loanTrackedBalances.json``

"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping

from eth_typing import ChecksumAddress
from web3 import Web3

from loan_inspector import ConfigurationError
from loan_inspector.block_tag import BlockTag, parse_block_tags, parse_loan_ids


DEFAULT_JSON_RPC_URL = "http://localhost:8545"

DEFAULT_CONTRACT_ADDRESS = "0x0000000000000000000000000000000000000001"

DEFAULT_BATCH_SIZE = 2

DEFAULT_BLOCK_TAGS = """
67600200
70000000
80000000
"""

DEFAULT_LOAN_IDS = """
1
2
3
"""

#: The report file name
DEFAULT_OUTPUT_FILE = "loanTrackedBalances.json"


@dataclass(slots=True, frozen=True)
class LoanInspectorConfig:
    """All input parameters for one inspection run.

    Created once at startup and passed to :py:func:`loan_inspector.inspector.inspect_loans`.
    """

    #: Node JSON-RPC endpoint
    json_rpc_url: str

    #: Lending market contract
    contract_address: ChecksumAddress

    #: How many ``eth_call`` requests go into one HTTP request
    batch_size: int

    #: Blocks we read the loans at, in the report order
    block_tags: tuple[BlockTag, ...]

    #: Loans we read, in the report order
    loan_ids: tuple[int, ...]

    #: Where to write the JSON report
    output_file: Path = Path(DEFAULT_OUTPUT_FILE)

    def __post_init__(self):
        if type(self.batch_size) != int or self.batch_size <= 0:
            raise ConfigurationError(f"Batch size must be a positive integer, got {self.batch_size!r}")

    def get_request_count(self) -> int:
        """How many ``eth_call`` requests this run makes."""
        return len(self.block_tags) * len(self.loan_ids)


def parse_batch_size(value: str) -> int:
    """Parse a positive batch size.

    :raise ConfigurationError:
        If the value is not a positive integer
    """
    try:
        batch_size = int(value.strip())
    except ValueError as e:
        raise ConfigurationError(f"Batch size must be an integer, got {value!r}") from e

    if batch_size <= 0:
        raise ConfigurationError(f"Batch size must be positive, got {batch_size}")

    return batch_size


def parse_contract_address(value: str) -> ChecksumAddress:
    """Validate and checksum a contract address.

    :raise ConfigurationError:
        If the value is not a 20 byte hex address
    """
    value = value.strip()
    if not Web3.is_address(value):
        raise ConfigurationError(f"Not a valid contract address: {value!r}")
    return Web3.to_checksum_address(value)


def read_config_from_env(environ: Mapping[str, str] = os.environ) -> LoanInspectorConfig:
    """Read the loan inspector configuration from environment variables.

    All values are validated here, before any network activity.

    :param environ:
        Environment to read. Pass a dict in tests.

    :raise ConfigurationError:
        On any malformed value
    """

    block_tags_text = environ.get("LI_BLOCK_NUMBERS_STRING")
    if block_tags_text is None:
        # Older deployments use the misspelled name
        block_tags_text = environ.get("LI_BLOCK_NUMBERS_STING", DEFAULT_BLOCK_TAGS)

    return LoanInspectorConfig(
        json_rpc_url=environ.get("LI_RPC_URL", DEFAULT_JSON_RPC_URL),
        contract_address=parse_contract_address(environ.get("LI_CONTRACT_ADDRESS", DEFAULT_CONTRACT_ADDRESS)),
        batch_size=parse_batch_size(environ.get("LI_BATCH_SIZE", str(DEFAULT_BATCH_SIZE))),
        block_tags=tuple(parse_block_tags(block_tags_text)),
        loan_ids=tuple(parse_loan_ids(environ.get("LI_LOAN_IDS_STRING", DEFAULT_LOAN_IDS))),
        output_file=Path(environ.get("LI_OUTPUT_FILE", DEFAULT_OUTPUT_FILE)),
    )
