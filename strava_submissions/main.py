import argparse
import logging
from typing import Optional, Sequence

from werkzeug.serving import make_server

from .config import SERVER_HOST, SERVER_PORT, SUBMISSIONS_WORKBOOK
from .web import create_app
from .workbook_store import WorkbookSubmissionStore


def _setup_logging() -> None:
    if not logging.getLogger().hasHandlers():
        logging.basicConfig(
            level=logging.INFO,
            format="[%(asctime)s] %(levelname)s %(name)s: %(message)s",
        )


def _parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Serve the Strava run submission API."
    )
    parser.add_argument("--host", default=SERVER_HOST, help="Interface to bind")
    parser.add_argument("--port", type=int, default=SERVER_PORT, help="Port to bind")
    parser.add_argument(
        "--workbook",
        default=SUBMISSIONS_WORKBOOK,
        help="Workbook holding registrations and submissions",
    )
    return parser.parse_args(argv)


def main(argv: Optional[Sequence[str]] = None) -> None:
    _setup_logging()
    args = _parse_args(argv)
    app = create_app(store=WorkbookSubmissionStore(args.workbook))
    server = make_server(args.host, args.port, app, threaded=True)
    logging.info(
        "Serving submissions on http://%s:%s (workbook=%s)",
        args.host,
        args.port,
        args.workbook,
    )
    try:
        server.serve_forever()
    except KeyboardInterrupt:
        logging.info("Shutting down")
    finally:
        server.server_close()


if __name__ == "__main__":
    main()
