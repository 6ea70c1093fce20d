"""Console progress helpers: timed blocks and HH:MM:SS formatting."""
import time
from contextlib import contextmanager


def format_time_hms(seconds):
    """Converts seconds to a formatted HH:MM:SS string."""
    m, s = divmod(seconds, 60)
    h, m = divmod(m, 60)
    return f"{int(h):02d}:{int(m):02d}:{int(s):02d}"


@contextmanager
def trace_block(title: str, verbose: bool = True):
    """Print a titled block with its elapsed wall time when ``verbose``."""
    if verbose:
        print(f"--- {title} ---")
    start = time.perf_counter()
    try:
        yield
    finally:
        if verbose:
            elapsed = time.perf_counter() - start
            print(f"--- {title}: done in {elapsed:.3f} s ---")
