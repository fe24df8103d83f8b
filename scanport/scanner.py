from __future__ import annotations

import logging
from concurrent.futures import FIRST_EXCEPTION, ThreadPoolExecutor, wait

from pydantic import BaseModel, ConfigDict, Field, field_validator

from scanport.probe import probe
from scanport.targets import iter_targets, validate_prefix

logger = logging.getLogger("scanport.scanner")


class ScanRequest(BaseModel):
    model_config = ConfigDict(frozen=True)

    timeout: float = Field(..., ge=0, allow_inf_nan=False, description="Per-host connect timeout in seconds")
    port: int = Field(..., ge=0, le=65535)
    subnets: tuple[str, ...] = Field(..., min_length=1, description='/24 prefixes such as "10.60.3."')

    @field_validator("subnets")
    @classmethod
    def _check_prefixes(cls, value: tuple[str, ...]) -> tuple[str, ...]:
        for prefix in value:
            validate_prefix(prefix)
        return value


def scan(request: ScanRequest) -> list[str]:
    """Probe every host of every requested /24 at once and return the reachable ones.

    Addresses come back in enumeration order, whatever order the probes finish in.
    A :class:`~scanport.probe.ProbeError` from any probe aborts the scan and is re-raised.
    """
    targets = list(iter_targets(request.subnets, request.port))
    logger.info("Scanning %d hosts on port %d (timeout %ss)", len(targets), request.port, request.timeout)

    executor = ThreadPoolExecutor(max_workers=len(targets), thread_name_prefix="probe")
    try:
        futures = [executor.submit(probe, target, request.timeout) for target in targets]
        done, _ = wait(futures, return_when=FIRST_EXCEPTION)
        for future in done:
            exc = future.exception()
            if exc is not None:
                logger.info("Scan aborted: %s", exc)
                raise exc
        outcomes = [future.result() for future in futures]
    finally:
        # Probes already in flight are bounded by the timeout and left to finish.
        executor.shutdown(wait=False, cancel_futures=True)

    hosts = [outcome.address for outcome in outcomes if outcome.is_reachable]
    logger.info("Scan complete: %d of %d hosts reachable", len(hosts), len(targets))
    return hosts
