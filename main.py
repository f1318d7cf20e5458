import argparse
import logging
import sys

import uvicorn

import crud
from database import SessionLocal, init_db
from errors import AppError
from settings import settings

logger = logging.getLogger("todo_api")


def configure_logging():
    logging.basicConfig(
        level=settings.LOG_LEVEL.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def serve(args):
    uvicorn.run("app:app", host=args.host, port=args.port, log_level=settings.LOG_LEVEL.lower())


def promote(args):
    init_db()
    db = SessionLocal()
    try:
        user = crud.promote_admin(db, args.email)
    except AppError as e:
        logger.error("Cannot promote %s: %s", args.email, e.message)
        return 1
    finally:
        db.close()
    print(f"{user.username} <{user.email}> is now an admin")
    return 0


def build_parser():
    parser = argparse.ArgumentParser(description="Todo API")
    commands = parser.add_subparsers(dest="command")

    serve_cmd = commands.add_parser("serve", help="run the API server")
    serve_cmd.add_argument("--host", default=settings.HOST)
    serve_cmd.add_argument("--port", type=int, default=settings.PORT)
    serve_cmd.set_defaults(func=serve)

    promote_cmd = commands.add_parser("promote-admin", help="grant the admin role to a user")
    promote_cmd.add_argument("email")
    promote_cmd.set_defaults(func=promote)
    return parser


def main(argv=None):
    configure_logging()
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.command is None:
        args = parser.parse_args(["serve"] + list(argv or []))
    return args.func(args) or 0


if __name__ == "__main__":
    sys.exit(main())
