import logging

from models import LoggingConfig
from sequencer import NotRestartableError, Sequence, Signal
from utils import run_pipeline, setup_logging

logger = logging.getLogger("sequencer.demo")

LOG_LINES = [
    "GET /index.html 200",
    "GET /missing 404",
    "POST /login 200",
    "GET /index.html 200",
    "GET /admin 403",
    "POST /login 500",
]


def show_early_stop():
    """Drive an unbounded source and stop after three matches"""
    def naturals(visit):
        n = 0
        while visit(n):
            n += 1

    picked = []

    def keep_three(item):
        picked.append(item)
        return Signal.CONTINUE if len(picked) < 3 else Signal.STOP

    signal = Sequence.from_producer(naturals).filter(lambda n: n % 11 == 0).drive(keep_three)
    print(f"first multiples of 11: {picked} ({signal.name})")


def show_text_filters():
    lines = Sequence.of(LOG_LINES)
    errors = lines.match(r" [45]\d\d$")
    print("errors:", errors.to_list())
    print("exact 'GET /admin 403':", lines.match_text("GET /admin 403").count())

    ignored = Sequence.of(["GET /missing 404"])
    print("errors without known 404s:", errors.remove(ignored).to_list())

    try:
        lines.remove(Sequence.from_producer(lambda visit: visit("GET /admin 403")))
    except NotRestartableError as e:
        print(f"one-shot exclude rejected: {e}")


def show_counting():
    lines = Sequence.of(LOG_LINES)
    print("repeated lines:", lines.duplicates().to_list())
    print("distinct lines:", lines.deduplicate().count())
    for digest, line in lines.deduplicate().hashed().to_list():
        print(f"  {digest:016x}  {line}")


def show_grouping():
    by_status = Sequence.of(LOG_LINES).group_by(lambda line: line.rsplit(" ", 1)[1])
    for group in by_status.to_list():
        print(f"  {group[0].rsplit(' ', 1)[1]}: {len(group)} line(s)")
    print("sorted path sum:", Sequence.of(["/b", "/c", "/a"]).sum())


def show_aggregate():
    sizes = Sequence.of(["120", "64", "oops", "300"])
    total, error = sizes.aggregate(int)
    print(f"bytes total={total} error={error!r}")
    print("clean total:", sizes.filter(str.isdigit).aggregate(int).unwrap())


def show_pipeline():
    result = run_pipeline({
        "data": LOG_LINES,
        "operations": [
            {"type": "match", "pattern": "^POST "},
            {"type": "remove", "values": ["POST /login 500"]},
            {"type": "replace_table", "table": {"POST /login 200": "login ok"}},
        ],
        "terminal": "collect",
    })
    if result.ok:
        print("pipeline result:", result.result)
    else:
        logger.warning(f"Pipeline failed: {result.error}")


if __name__ == "__main__":
    setup_logging(LoggingConfig(level="INFO"))
    for demo in (show_early_stop, show_text_filters, show_counting, show_grouping, show_aggregate, show_pipeline):
        print(f"\n== {demo.__name__[5:].replace('_', ' ')} ==")
        demo()
