import logging
import time
from typing import Callable, Optional, Type, TypeVar, Tuple

T = TypeVar("T")

logger = logging.getLogger(__name__)


def with_retry(
    fn: Callable[[], T],
    *,
    retries: int = 3,
    backoff_seconds: float = 0.5,
    retry_on: Optional[Tuple[Type[BaseException], ...]] = (Exception,),
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """Run fn() with retries and exponential backoff; re-raises the last error once retries are spent.
    Only for side-effect-free transport calls (embeddings, knowledge loading). Analysis phases never go through here."""
    exc_types: Tuple[Type[BaseException], ...] = retry_on or (Exception,)

    for attempt in range(retries + 1):
        try:
            return fn()
        except exc_types as e:
            if attempt >= retries:
                raise
            sleep_s = backoff_seconds * (2 ** attempt)
            logger.warning("retrying_call", extra={"attempt": attempt + 1, "sleep_s": sleep_s, "error": str(e)})
            sleep(sleep_s)

    raise RuntimeError("unreachable")
