from strmthumb.domain.events import CompleteEvent
from strmthumb.domain.models import BatchProgress
from strmthumb.main import merge_attempts


def _complete(total, succeeded, failed, skipped=0):
    return CompleteEvent(
        progress=BatchProgress(
            total=total, processed=total, succeeded=succeeded, failed=len(failed), skipped=skipped
        ),
        failed_identifiers=failed,
    )


def test_merge_single_attempt():
    summary = merge_attempts(3, [_complete(3, 2, ["/m/c.strm"], skipped=1)])
    assert summary.progress.succeeded == 2
    assert summary.progress.failed == 1
    assert summary.progress.skipped == 1
    assert summary.failed_identifiers == ["/m/c.strm"]


def test_merge_retry_recovers_failures():
    first = _complete(4, 1, ["/m/b.strm", "/m/c.strm", "/m/d.strm"])
    retry = _complete(3, 2, ["/m/d.strm"])

    summary = merge_attempts(4, [first, retry])

    assert summary.progress.total == 4
    assert summary.progress.processed == 4
    assert summary.progress.succeeded == 3
    assert summary.progress.failed == 1
    assert summary.failed_identifiers == ["/m/d.strm"]
