"""Matching call results to requests by JSON-RPC id."""

import logging
import random

import pytest

from loan_inspector.abi import LoanPreview
from loan_inspector.batch import CallResult
from loan_inspector.correlation import MAX_SAFE_INTEGER, CorrelationError, prepare_tracked_balances
from loan_inspector.request import prepare_requests

CONTRACT_ADDRESS = "0x0000000000000000000000000000000000000001"


@pytest.fixture()
def loan_requests():
    """6 requests over 2 blocks and 3 loans."""
    return prepare_requests(CONTRACT_ADDRESS, [100, "latest"], [1, 2, 3])


def _results_for(loan_requests) -> list[CallResult]:
    return [
        CallResult(
            request_id=r.request_id,
            preview=LoanPreview(period_index=0, tracked_balance=r.request_id * 1000, outstanding_balance=0),
        )
        for r in loan_requests
    ]


def _check_rows(loan_requests, balances):
    assert len(balances) == len(loan_requests)
    for request, balance in zip(loan_requests, balances):
        assert balance.block_tag == request.block_tag
        assert balance.loan_id == request.loan_id
        assert balance.tracked_balance == request.request_id * 1000


def test_in_order(loan_requests):
    balances = prepare_tracked_balances(loan_requests, _results_for(loan_requests))
    _check_rows(loan_requests, balances)


def test_reversed(loan_requests):
    results = list(reversed(_results_for(loan_requests)))
    balances = prepare_tracked_balances(loan_requests, results)
    _check_rows(loan_requests, balances)


@pytest.mark.parametrize("seed", [1, 2, 3])
def test_shuffled(loan_requests, seed):
    results = _results_for(loan_requests)
    random.Random(seed).shuffle(results)
    balances = prepare_tracked_balances(loan_requests, results)
    _check_rows(loan_requests, balances)


def test_swapped_ids():
    """Two requests with swapped ids do not line up with sorted results."""
    loan_requests = prepare_requests(CONTRACT_ADDRESS, [100], [1, 2, 3])
    results = _results_for(loan_requests)
    swapped_requests = [loan_requests[0], loan_requests[2], loan_requests[1]]

    with pytest.raises(CorrelationError) as exc_info:
        prepare_tracked_balances(swapped_requests, results)

    assert "Call result ID: 2" in str(exc_info.value)
    assert "Request ID: 3" in str(exc_info.value)


def test_unknown_result_id():
    loan_requests = prepare_requests(CONTRACT_ADDRESS, [100], [1, 2, 3])
    results = _results_for(loan_requests)
    results[1] = CallResult(request_id=9, preview=results[1].preview)

    with pytest.raises(CorrelationError) as exc_info:
        prepare_tracked_balances(loan_requests, results)

    assert "Call result ID: 3" in str(exc_info.value)
    assert "Request ID: 2" in str(exc_info.value)


def test_missing_result(loan_requests):
    """No silent drops."""
    results = _results_for(loan_requests)[1:]
    with pytest.raises(CorrelationError, match="5 call results for 6 requests"):
        prepare_tracked_balances(loan_requests, results)


def test_large_balance_kept_exact(caplog):
    """Balances beyond the double precision range are not rounded."""
    loan_requests = prepare_requests(CONTRACT_ADDRESS, [100], [1])
    big = 2**200 + 1
    results = [CallResult(request_id=1, preview=LoanPreview(0, big, 0))]

    with caplog.at_level(logging.WARNING):
        balances = prepare_tracked_balances(loan_requests, results)

    assert balances[0].tracked_balance == big
    assert big > MAX_SAFE_INTEGER
    assert "exceeds the safe integer range" in caplog.text


def test_swapped_result_ids():
    """Swapping two ids inside the result set leaves a duplicate id after sorting."""
    loan_requests = prepare_requests(CONTRACT_ADDRESS, [100], [1, 2, 3])
    results = _results_for(loan_requests)
    # Result for request 2 now claims id 3, and no result carries id 2
    results[1] = CallResult(request_id=3, preview=results[1].preview)
    results.reverse()

    with pytest.raises(CorrelationError) as exc_info:
        prepare_tracked_balances(loan_requests, results)

    assert "Call result ID: 3" in str(exc_info.value)
    assert "Request ID: 2" in str(exc_info.value)
