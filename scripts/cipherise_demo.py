"""Drive a Cipherise server from the command line.

Creates a service (stored in a file so later runs can reuse it), enrols
users and runs Wave or Push authentications against them.

Example:
	python scripts/cipherise_demo.py --url https://cipherise.example.com create-service --name "Demo"
	python scripts/cipherise_demo.py enrol --user alice
	python scripts/cipherise_demo.py wave
	python scripts/cipherise_demo.py push --user alice --level 2
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from cipherise.authentication import AuthenticationLevel
from cipherise.client import Client
from cipherise.common.config import get_settings
from cipherise.common.errors import CipheriseError
from cipherise.common.logger import VERBOSE


async def create_service(client: Client, args) -> int:
	service = await client.create_service(args.name)
	Path(args.service_file).write_bytes(service.serialize())
	print(f"Created service {service.id}, saved to {args.service_file}")
	return 0


async def enrol(client: Client, args) -> int:
	service = await client.deserialize_service_async(Path(args.service_file).read_bytes())
	enrollment = await service.enroll_user(args.user)
	print(f"Scan the WaveCode at: {enrollment.wave_code_url}")

	identicon = await enrollment.validate()
	print(f"Identicon: {identicon}")
	answer = input("Does the identicon match the one on the device? [y/N] ")

	result = await enrollment.confirm(answer.strip().lower() == "y")
	print("Enrolled" if result.success else "Enrollment rejected")
	Path(args.service_file).write_bytes(service.serialize())
	return 0 if result.success else 1


async def wave(client: Client, args) -> int:
	service = await client.deserialize_service_async(Path(args.service_file).read_bytes())
	auth = await service.wave_auth(args.message, args.branding, AuthenticationLevel(args.level))
	print(f"Scan the WaveCode at: {auth.wave_code_url}")

	result = await auth.authenticate()
	print(f"{result.username}: {result.outcome.value}")
	Path(args.service_file).write_bytes(service.serialize())
	return 0


async def push(client: Client, args) -> int:
	service = await client.deserialize_service_async(Path(args.service_file).read_bytes())
	devices = await service.get_user_devices(args.user)
	if not devices:
		print(f"{args.user} has not enrolled")
		return 1

	auth = await service.push_auth(
		args.user, devices[0], args.message, args.branding, args.message, AuthenticationLevel(args.level)
	)
	result = await auth.authenticate()
	print(f"{result.username}: {result.outcome.value}")
	Path(args.service_file).write_bytes(service.serialize())
	return 0


COMMANDS = {
	"create-service": create_service,
	"enrol": enrol,
	"wave": wave,
	"push": push,
}


async def run(args) -> int:
	async with Client(args.url) as client:
		return await COMMANDS[args.command](client, args)


def main():
	parser = argparse.ArgumentParser(description="Cipherise SDK demo")
	parser.add_argument("--url", default=get_settings().url, help="Cipherise server URL (default: CIPHERISE_URL)")
	parser.add_argument("--service-file", default="service.bin", help="Where the serialized service is kept")
	parser.add_argument("-v", "--verbose", action="store_true", help="Log SDK internals")
	sub = parser.add_subparsers(dest="command", required=True)

	p = sub.add_parser("create-service", help="Register a new service provider")
	p.add_argument("--name", required=True, help="Display name of the service")

	p = sub.add_parser("enrol", help="Enrol a user")
	p.add_argument("--user", required=True)

	for name in ("wave", "push"):
		p = sub.add_parser(name, help=f"Run a {name} authentication")
		if name == "push":
			p.add_argument("--user", required=True)
		p.add_argument("--message", default="Please authenticate", help="Message shown on the device")
		p.add_argument("--branding", default="Cipherise demo", help="Branding shown on the device")
		p.add_argument("--level", type=int, default=1, choices=[1, 2, 3, 4], help="Authentication level")

	args = parser.parse_args()
	if not args.url:
		parser.error("--url or CIPHERISE_URL is required")

	logging.basicConfig(level=VERBOSE if args.verbose else logging.WARNING)

	try:
		sys.exit(asyncio.run(run(args)))
	except CipheriseError as e:
		print(f"Error: {e}", file=sys.stderr)
		sys.exit(1)


if __name__ == "__main__":
	main()
