"""Send ``eth_call`` requests as JSON-RPC batches and decode the results.

- Requests are split to contiguous batches of at most ``batch_size`` items

- Each batch is one HTTP POST with a JSON array body

- Batches are sent one after another, never in parallel

- Any problem with any batch aborts the whole run, there are no retries

JSON-RPC nodes may answer batch items in any order, so
the results carry the JSON-RPC id and are matched back to requests
in :py:mod:`loan_inspector.correlation`.
"""

import datetime
import logging
import time
from dataclasses import dataclass, field
from itertools import islice
from typing import Any, Generator, Iterable, Sequence

import requests
import ujson
from requests.exceptions import RequestException
from tqdm_loggable.auto import tqdm

from loan_inspector import ConfigurationError, LoanInspectorError
from loan_inspector.abi import LoanPreview, decode_loan_preview
from loan_inspector.request import LoanPreviewRequest, RPCRequest
from loan_inspector.utils import get_url_domain


logger = logging.getLogger(__name__)


#: HTTP headers for JSON-RPC POST
JSON_RPC_HEADERS = {"Content-Type": "application/json"}


class RPCTransportError(LoanInspectorError):
    """Could not reach the JSON-RPC node or got a HTTP error back."""


class BadBatchResponse(LoanInspectorError):
    """JSON-RPC batch response does not look like what we sent for.

    - Missing body

    - Wrong number of items

    - Item with an error instead of a result

    - Item with an id we did not send in this batch
    """


@dataclass(slots=True, frozen=True)
class CallResult:
    """Decoded ``getLoanPreview()`` result and its JSON-RPC id."""

    #: JSON-RPC id of the response item
    request_id: int

    #: Decoded return value
    preview: LoanPreview


@dataclass(slots=True, frozen=True)
class BatchResponse:
    """Raw JSON-RPC batch reply."""

    #: Decoded JSON body, ``None`` if the body was empty
    data: Any

    #: Wall clock duration of the HTTP round trip
    duration: datetime.timedelta


@dataclass(slots=True, frozen=True)
class BatchReceipt:
    """Timing information of one processed batch."""

    #: 1-based batch number
    index: int

    #: Position of the first request of this batch in the full request list
    first_request: int

    #: Number of requests in this batch
    size: int

    #: Wall clock duration of the HTTP round trip
    duration: datetime.timedelta


@dataclass(slots=True)
class DispatchOutcome:
    """Results of all batches.

    Results are in the order the node returned them.
    """

    call_results: list[CallResult] = field(default_factory=list)

    receipts: list[BatchReceipt] = field(default_factory=list)

    def get_total_duration(self) -> datetime.timedelta:
        """Sum of all batch round trip durations."""
        return sum((r.duration for r in self.receipts), datetime.timedelta(0))


def batcher(iterable: Iterable, batch_size: int) -> Generator[list, None, None]:
    """Batch data into lists of batch_size length. The last batch may be shorter.

    https://stackoverflow.com/a/8290514/2527433

    :raise ConfigurationError:
        If batch size is not positive
    """
    if type(batch_size) != int or batch_size <= 0:
        raise ConfigurationError(f"Batch size must be a positive integer, got {batch_size!r}")

    iterator = iter(iterable)
    while batch := list(islice(iterator, batch_size)):
        yield batch


def post_batch(
    session: requests.Session,
    json_rpc_url: str,
    batch: Sequence[RPCRequest],
) -> BatchResponse:
    """Send one JSON-RPC batch as a single HTTP POST.

    :param session:
        HTTP session used for all batches of a run

    :param json_rpc_url:
        Node endpoint

    :param batch:
        JSON-RPC request items, sent in this order

    :return:
        Decoded response body and round trip time

    :raise RPCTransportError:
        Network error or HTTP error status

    :raise BadBatchResponse:
        Body is not JSON
    """
    started = time.perf_counter()
    try:
        response = session.post(json_rpc_url, data=ujson.dumps(list(batch)), headers=JSON_RPC_HEADERS)
        response.raise_for_status()
    except RequestException as e:
        raise RPCTransportError(f"JSON-RPC batch of {len(batch)} requests to {get_url_domain(json_rpc_url)} failed: {e}") from e
    duration = datetime.timedelta(seconds=time.perf_counter() - started)

    content = response.content
    if not content:
        return BatchResponse(data=None, duration=duration)

    try:
        data = ujson.loads(content)
    except ValueError as e:
        raise BadBatchResponse(f"JSON-RPC batch response is not JSON, status {response.status_code}, got {len(content)} bytes: {content[0:200]!r}") from e

    return BatchResponse(data=data, duration=duration)


def check_batch_response(
    data: Any,
    batch_length: int,
    request_ids: Iterable[int] | None = None,
):
    """Check the JSON-RPC batch response has a result for every request.

    :param data:
        Decoded response body

    :param batch_length:
        How many requests we sent

    :param request_ids:
        JSON-RPC ids we sent in this batch.

        If given, every response item must carry one of them.

    :raise BadBatchResponse:
        On the first failed check
    """

    if batch_length > 0 and data is None:
        raise BadBatchResponse(f"JSON-RPC batch request failed. No data in the response. Expected {batch_length} items")

    if batch_length < 1:
        return

    if not isinstance(data, list):
        # Nodes reply with a single error object e.g. when batches are disabled
        raise BadBatchResponse(f"JSON-RPC batch request failed. Expected an array of {batch_length} items, got {type(data).__name__}: {data}")

    if len(data) != batch_length:
        raise BadBatchResponse(f"JSON-RPC batch request failed. Bad response data array length. Expected: {batch_length}. Actual: {len(data)}")

    error_items = [item for item in data if not isinstance(item, dict) or "result" not in item]
    if error_items:
        first = error_items[0]
        error = first.get("error") if isinstance(first, dict) else None
        error = error if isinstance(error, dict) else {}
        raise BadBatchResponse(
            f"JSON-RPC batch request failed. "
            f"{len(error_items)} items in the response data array without the result. "
            f"The first error message: '{error.get('message')}'. "
            f"The first error code: {error.get('code')}. "
            f"The full first error item: {first}."
        )

    if request_ids is not None:
        sent_ids = set(request_ids)
        for item in data:
            if type(item.get("id")) != int:
                raise BadBatchResponse(f"JSON-RPC batch response contains a malformed id {item.get('id')!r}. Sent ids: {sorted(sent_ids)}")
            if item.get("id") not in sent_ids:
                raise BadBatchResponse(f"JSON-RPC batch response contains id {item.get('id')!r} that was not sent in this batch. Sent ids: {sorted(sent_ids)}")


def collect_results(data: list[dict]) -> list[CallResult]:
    """Decode ``getLoanPreview()`` results of a checked batch response.

    :raise LoanPreviewDecodeError:
        If any result cannot be decoded
    """
    return [CallResult(request_id=item["id"], preview=decode_loan_preview(item["result"])) for item in data]


def dispatch_batches(
    session: requests.Session,
    json_rpc_url: str,
    loan_requests: Sequence[LoanPreviewRequest],
    batch_size: int,
    display_progress: bool | str = False,
) -> DispatchOutcome:
    """Send all requests in sequential batches and decode the results.

    - The batch size is checked before anything is sent

    - A batch is added to the results only after it was checked and decoded

    - The first failure aborts the run

    :param session:
        HTTP session

    :param json_rpc_url:
        Node endpoint

    :param loan_requests:
        All requests in the enumeration order

    :param batch_size:
        Max requests per HTTP request

    :param display_progress:
        Show a tqdm progress bar. Pass a string to use as the progress bar description.

    :return:
        Decoded results of all batches and per batch timings
    """

    batches = list(batcher(loan_requests, batch_size))

    if display_progress:
        if type(display_progress) == str:
            desc = display_progress
        else:
            desc = f"Reading loan previews, {len(loan_requests)} calls in {len(batches)} batches"
        progress_bar = tqdm(total=len(batches), desc=desc)
    else:
        progress_bar = None

    outcome = DispatchOutcome()
    first_request = 0
    for idx, batch in enumerate(batches, start=1):
        rpc_batch = [r.rpc_request for r in batch]
        response = post_batch(session, json_rpc_url, rpc_batch)
        check_batch_response(response.data, len(rpc_batch), [r.request_id for r in batch])
        outcome.call_results.extend(collect_results(response.data))

        receipt = BatchReceipt(
            index=idx,
            first_request=first_request,
            size=len(batch),
            duration=response.duration,
        )
        outcome.receipts.append(receipt)

        logger.info(
            "A batch of requests from %d to %d was sent. A response was received and processed. Response waiting time: %d ms.",
            first_request,
            first_request + len(batch),
            response.duration / datetime.timedelta(milliseconds=1),
        )

        first_request += len(batch)

        if progress_bar:
            progress_bar.update(1)

    if progress_bar:
        progress_bar.close()

    return outcome
