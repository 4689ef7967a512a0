"""Loan inspector pipeline and command line entry point.

Read ``getLoanPreview()`` tracked balances for all loan ids at all block tags
and write them to a JSON file.

Example:

.. code-block:: shell

    export LI_RPC_URL=https://polygon-rpc.com
    export LI_CONTRACT_ADDRESS=0x...
    export LI_BLOCK_NUMBERS_STRING="67600200 70000000 latest"
    export LI_LOAN_IDS_STRING="1 2 3"
    loan-inspector

"""

import logging
from dataclasses import dataclass

import requests

from loan_inspector.abi import check_loan_preview_abi
from loan_inspector.batch import BatchReceipt, dispatch_batches
from loan_inspector.config import LoanInspectorConfig, read_config_from_env
from loan_inspector.correlation import prepare_tracked_balances
from loan_inspector.report import LoanTrackedBalance, write_report
from loan_inspector.request import LoanPreviewRequest, prepare_requests
from loan_inspector.utils import get_url_domain, setup_console_logging

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class InspectionResult:
    """Everything one run produced."""

    #: All sent requests in the enumeration order
    requests: list[LoanPreviewRequest]

    #: Report rows in the request order
    balances: list[LoanTrackedBalance]

    #: Timing of each batch
    receipts: list[BatchReceipt]


def inspect_loans(
    config: LoanInspectorConfig,
    session: requests.Session | None = None,
    display_progress: bool | str = False,
) -> InspectionResult:
    """Read tracked balances of all configured loans at all configured blocks.

    Any failure aborts the run with an exception.

    :param config:
        Run parameters

    :param session:
        HTTP session to use. A new one is created if not given.

    :param display_progress:
        Show a tqdm progress bar over the batches
    """
    assert isinstance(config, LoanInspectorConfig), f"Got {type(config)}"

    check_loan_preview_abi()

    logger.info("Preparing RPC requests ...")
    loan_requests = prepare_requests(config.contract_address, config.block_tags, config.loan_ids)
    logger.info("Done. %d requests are prepared.", len(loan_requests))

    logger.info("Sending RPC requests in batches and getting responses ...")
    if session is None:
        with requests.Session() as session:
            outcome = dispatch_batches(session, config.json_rpc_url, loan_requests, config.batch_size, display_progress=display_progress)
    else:
        outcome = dispatch_batches(session, config.json_rpc_url, loan_requests, config.batch_size, display_progress=display_progress)
    logger.info(
        "Done. %d batches have been sent and the responses received and processed, total waiting time %s",
        len(outcome.receipts),
        outcome.get_total_duration(),
    )

    logger.info("Matching the responses with requests and preparing the final report ...")
    balances = prepare_tracked_balances(loan_requests, outcome.call_results)
    logger.info("Done. The report is ready.")

    return InspectionResult(
        requests=loan_requests,
        balances=balances,
        receipts=outcome.receipts,
    )


def main():
    """Command line entry point.

    Reads the configuration from environment variables,
    see :py:mod:`loan_inspector.config`.
    """
    setup_console_logging()

    logger.info("Welcome to Loan Inspector")
    config = read_config_from_env()

    logger.info("Input parameters:")
    logger.info("  Number of loan IDs: %d", len(config.loan_ids))
    logger.info("  Number of block tags: %d", len(config.block_tags))
    logger.info("  Lending market contract address: %s", config.contract_address)
    logger.info("  JSON-RPC node: %s", get_url_domain(config.json_rpc_url))
    logger.info("  Batch size for RPC requesting: %d", config.batch_size)

    with requests.Session() as session:
        result = inspect_loans(config, session=session)

    path = write_report(result.balances, config.output_file)
    logger.info("Everything is done. The file with the loan tracked balances: %s", path)


if __name__ == "__main__":
    main()
