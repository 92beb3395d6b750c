"""Interactive CLI simulator — exercise issuance and verification without an SMS provider."""

import asyncio
import logging

from phone_verification.database.engine import async_session_factory, init_db
from phone_verification.errors import VerificationError
from phone_verification.models.verification import VerificationPurpose
from phone_verification.services.sms_gateway import ConsoleSMSGateway
from phone_verification.services.verification_service import PhoneVerificationService

BLUE = "\033[94m"
GREEN = "\033[92m"
YELLOW = "\033[93m"
RED = "\033[91m"
DIM = "\033[2m"
BOLD = "\033[1m"
RESET = "\033[0m"


async def main() -> None:
    # Codes are printed by the console gateway
    logging.basicConfig(level=logging.INFO, format="%(message)s")

    print(f"\n{BOLD}{'=' * 52}")
    print(f"  📱  Phone Verification — Simulator")
    print(f"{'=' * 52}{RESET}\n")

    await init_db()

    print(f"{DIM}Commands: send | verify <code> | switch | quit{RESET}")
    print(f"{DIM}Codes are printed in the logs by the console SMS gateway{RESET}\n")

    phone = input(f"{YELLOW}Phone number (E.164): {RESET}").strip() or "+905551234567"
    purpose = VerificationPurpose.LOGIN
    print(f"{DIM}Simulating {purpose.value} for {phone}{RESET}\n")

    gateway = ConsoleSMSGateway()

    while True:
        try:
            user_input = input(f"{BLUE}{BOLD}>{RESET} ").strip()
        except (KeyboardInterrupt, EOFError):
            print(f"\n{DIM}Goodbye!{RESET}")
            break

        if not user_input:
            continue

        command, _, argument = user_input.partition(" ")
        command = command.lower()

        if command == "quit":
            print(f"{DIM}Goodbye!{RESET}")
            break

        if command == "switch":
            phone = input(f"{YELLOW}New phone number: {RESET}").strip()
            print(f"{DIM}Switched to {phone}{RESET}\n")
            continue

        async with async_session_factory() as session:
            service = PhoneVerificationService(session, gateway)
            try:
                if command == "send":
                    result = await service.send_verification_code(phone, purpose)
                elif command == "verify":
                    result = await service.verify_code(phone, argument, purpose)
                else:
                    print(f"{DIM}Unknown command{RESET}\n")
                    continue
            except VerificationError as exc:
                print(f"{RED}{BOLD}✗ {exc.kind.value}:{RESET} {exc.message}\n")
                continue

        print(f"{GREEN}{BOLD}✓{RESET} {result.message}\n")


if __name__ == "__main__":
    asyncio.run(main())
