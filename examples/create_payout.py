"""
Minimal script that signs and submits a Swish payout using the public API.
"""

from __future__ import annotations

import argparse
import datetime
import logging
import sys

from swish_payments import ConfigError, SwishError, create_swish_client, get_certificate_serial_number


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Submit a signed Swish payout")
    parser.add_argument(
        "--env-file",
        default=".env",
        help="Path to the .env file containing SWISH_* settings",
    )
    parser.add_argument("--payee-alias", required=True, help="Recipient phone number")
    parser.add_argument("--payee-ssn", required=True, help="Recipient personal identity number")
    parser.add_argument("--amount", required=True, help="Amount in SEK, e.g. 100.00")
    parser.add_argument("--callback-url", required=True, help="HTTPS callback for the result")
    parser.add_argument("--signing-key", required=True, help="PEM private key of the signing certificate")
    parser.add_argument("--signing-cert", required=True, help="PEM signing certificate")
    parser.add_argument("--signing-passphrase", default=None)
    parser.add_argument("--message", default=None)
    parser.add_argument(
        "--log-level",
        default="INFO",
        help="Python logging level (default: INFO)",
    )
    return parser.parse_args()


def main() -> int:
    args = parse_args()
    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(message)s",
    )

    try:
        client = create_swish_client(env_file=args.env_file)
    except (ConfigError, ValueError) as exc:
        logging.error("Invalid configuration: %s", exc)
        return 1

    with client:
        try:
            serial = get_certificate_serial_number(args.signing_cert)
            result = client.payouts.create_signed(
                {
                    "payerPaymentReference": "example-payout",
                    "payeeAlias": args.payee_alias,
                    "payeeSSN": args.payee_ssn,
                    "amount": args.amount,
                    "instructionDate": datetime.datetime.now(datetime.timezone.utc).strftime(
                        "%Y-%m-%dT%H:%M:%SZ"
                    ),
                    "signingCertificateSerialNumber": serial,
                    "message": args.message,
                },
                args.callback_url,
                args.signing_key,
                args.signing_passphrase,
            )
        except SwishError as exc:
            logging.error("Payout failed (%s): %s", exc.kind.value, exc)
            for record in exc.errors:
                logging.error("  %s %s", record.error_code, record.error_message)
            return 1

    logging.info("Payout %s accepted with status %s", result.id, result.status)
    return 0


if __name__ == "__main__":
    sys.exit(main())
