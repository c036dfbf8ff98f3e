# scripts/serve.py
import os  # read environment variables
import argparse  # parse CLI args

import uvicorn  # ASGI server

def main() -> None:  # main entrypoint
    parser = argparse.ArgumentParser(description="Run the ChronoStamp claims API")  # CLI parser
    parser.add_argument("--host", default=os.environ.get("HOST", "127.0.0.1"))  # bind address
    parser.add_argument("--port", type=int, default=int(os.environ.get("PORT", "8000")))  # bind port
    parser.add_argument("--reload", action="store_true")  # dev auto-reload
    args = parser.parse_args()  # parse args

    # same as: uvicorn --factory chronostamp.main:create_app
    uvicorn.run("chronostamp.main:create_app", factory=True, host=args.host, port=args.port, reload=args.reload)

if __name__ == "__main__":  # run as script
    main()  # call main
