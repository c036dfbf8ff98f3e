# scripts/mint_token.py
import os  # read environment variables
import argparse  # parse CLI args

from chronostamp.security import mint_organizer_token  # same claims the API verifies

def main() -> None:  # main entrypoint
    parser = argparse.ArgumentParser(description="Mint an organizer bearer token")  # CLI parser
    parser.add_argument("--organizer", required=True)  # organizer wallet address, becomes `sub`
    parser.add_argument("--ttl-minutes", type=int, default=60)  # token lifetime
    args = parser.parse_args()  # parse args

    secret = os.environ.get("ORGANIZER_TOKEN_SECRET", "dev_secret_change_me")  # signing secret

    token = mint_organizer_token(args.organizer, secret, ttl_minutes=args.ttl_minutes)  # sign token
    print(token)  # output token to stdout

if __name__ == "__main__":  # run as script
    main()  # call main
