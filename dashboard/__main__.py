import os
import argparse
import uvicorn


def main(argv=None):
    parser = argparse.ArgumentParser(description="Run the codeguard dashboard")
    parser.add_argument("--host", default=os.getenv("HOST", "127.0.0.1"))
    parser.add_argument("--port", type=int, default=int(os.getenv("PORT", "3000")))
    parser.add_argument("--reload", action="store_true", help="Reload on code changes")
    parser.add_argument("--verbose", action="store_true", help="Log scan progress to stderr")
    args = parser.parse_args(argv)

    if args.verbose:
        os.environ["CODEGUARD_VERBOSE"] = "1"
    uvicorn.run("dashboard.app:app", host=args.host, port=args.port, reload=args.reload)


if __name__ == "__main__":
    main()
