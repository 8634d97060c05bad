#!/usr/bin/env python3

# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

from __future__ import annotations

import sys
import argparse
import json
import asyncio
import logging

from gree_ac_protocol.internal_types import *

from gree_ac_protocol import (
    __version__ as pkg_version,
    GreeConfig,
    GreeClient,
    GreeDevice,
    get_command,
    sensor_to_celsius,
  )
from gree_ac_protocol.util import normalize_mac

DEFAULT_WAIT_TIME = 5.0
"""The default amount of time (in seconds) to wait for devices to answer."""

class CmdExitError(RuntimeError):
    exit_code: int

    def __init__(self, exit_code: int, msg: Optional[str]=None):
        if msg is None:
            msg = f"Command exited with return code {exit_code}"
        super().__init__(msg)
        self.exit_code = exit_code

class ArgparseExitError(CmdExitError):
    pass

class NoExitArgumentParser(argparse.ArgumentParser):
    def exit(self, status=0, message=None):
        if message:
            self._print_message(message, sys.stderr)
        raise ArgparseExitError(status, message)

def device_summary(device: GreeDevice) -> JsonableDict:
    status = device.get_status()
    named: Dict[str, Jsonable] = {}
    for code, value in status.items():
        cmd = get_command(code)
        value_name = cmd.name_of(value)
        named[cmd.name] = value if value_name is None else value_name
    result: JsonableDict = {
        "device": device.info.to_jsonable(),
        "state": device.state.value,
        "status": dict(status),
        "named_status": named,
    }
    if "TemSen" in status:
        result["indoor_temperature"] = sensor_to_celsius(status["TemSen"])
    return result

class CommandHandler:
    _argv: Optional[Sequence[str]]
    _parser: argparse.ArgumentParser
    _args: argparse.Namespace
    _provide_traceback: bool = True

    def __init__(self, argv: Optional[Sequence[str]]=None):
        self._argv = argv

    def get_config(self) -> GreeConfig:
        config_file: Optional[str] = self._args.config_file
        config = GreeConfig() if config_file is None else GreeConfig.load_file(config_file)
        if not self._args.port is None:
            config.port = self._args.port
            config.scan_port = self._args.port
        if not self._args.scan_address is None:
            config.scan_address = self._args.scan_address
        config.validate()
        return config

    def _parse_assignments(self, assignments: List[str]) -> Dict[str, FieldValue]:
        fields: Dict[str, FieldValue] = {}
        for assignment in assignments:
            if not '=' in assignment:
                raise CmdExitError(1, f"Expected <name>=<value>, got {assignment!r}")
            name, value_str = assignment.split('=', 1)
            cmd = get_command(name)
            value: FieldValue
            try:
                value = int(value_str)
            except ValueError:
                try:
                    value = float(value_str)
                except ValueError:
                    value = cmd.value_of(value_str)
            fields[cmd.code] = value
        return fields

    async def _collect_devices(self, client: GreeClient, macs: List[str]) -> List[GreeDevice]:
        """Waits for the requested devices (or all devices, if macs is empty) to answer a scan."""
        wait_time: float = self._args.wait_time
        wanted = set(normalize_mac(mac) for mac in macs)
        async with client.discover(response_wait_time=wait_time) as request:
            async for info in request:
                logging.debug(f"Found {info}")
                if len(wanted) > 0 and wanted.issubset(client.devices.keys()):
                    break
        devices = [ d for mac, d in client.devices.items() if len(wanted) == 0 or mac in wanted ]
        missing = wanted - set(d.mac for d in devices)
        if len(missing) > 0:
            raise CmdExitError(1, f"Device(s) not found: {', '.join(sorted(missing))}")
        return devices

    async def _wait_bound(self, device: GreeDevice) -> None:
        if not await device.wait_until_bound(self._args.wait_time):
            raise CmdExitError(1, f"Device {device.mac} did not accept bind request")

    async def cmd_bare(self) -> int:
        print("A command is required", file=sys.stderr)
        return 1

    async def cmd_scan(self) -> int:
        wait_time: float = self._args.wait_time
        async with GreeClient(self.get_config()) as client:
            async with client.discover(response_wait_time=wait_time) as request:
                async for info in request:
                    print(json.dumps(info.to_jsonable(), indent=2, sort_keys=True))
                    sys.stdout.flush()
        return 0

    async def cmd_status(self) -> int:
        macs: List[str] = self._args.macs
        async with GreeClient(self.get_config()) as client:
            devices = await self._collect_devices(client, macs)
            rc = 0
            for device in devices:
                try:
                    await self._wait_bound(device)
                except CmdExitError as ex:
                    print(f"gree-ac: {ex}", file=sys.stderr)
                    rc = 1
                    continue
                device.request_status()
                if not await device.wait_until_available(self._args.wait_time):
                    print(f"gree-ac: device {device.mac} did not answer status request", file=sys.stderr)
                    rc = 1
                print(json.dumps(device_summary(device), indent=2, sort_keys=True))
                sys.stdout.flush()
        return rc

    async def cmd_set(self) -> int:
        mac = normalize_mac(self._args.mac)
        fields = self._parse_assignments(self._args.assignments)
        if len(fields) == 0:
            raise CmdExitError(1, "At least one <name>=<value> assignment is required")
        async with GreeClient(self.get_config()) as client:
            device = (await self._collect_devices(client, [mac]))[0]
            await self._wait_bound(device)
            acknowledged = asyncio.Event()
            device.add_refresh_handler(lambda _: acknowledged.set())
            device.cmd(fields)
            try:
                await asyncio.wait_for(acknowledged.wait(), self._args.wait_time)
            except asyncio.TimeoutError:
                raise CmdExitError(1, f"Device {device.mac} did not acknowledge command") from None
            print(json.dumps(device_summary(device), indent=2, sort_keys=True))
        return 0

    async def cmd_version(self) -> int:
        print(pkg_version)
        return 0

    async def arun(self) -> int:
        """Run the gree-ac command-line tool with provided arguments

        Args:
            argv (Optional[Sequence[str]], optional):
                A list of commandline arguments (NOT including the program as argv[0]!),
                or None to use sys.argv[1:]. Defaults to None.

        Returns:
            int: The exit code that would be returned if this were run as a standalone command.
        """
        parser = NoExitArgumentParser(prog="gree-ac", description="Discover and control Gree air conditioners on the local network.")


        # ======================= Main command

        self._parser = parser
        parser.add_argument('--traceback', "--tb", action='store_true', default=False,
                            help='Display detailed exception information')
        parser.add_argument('--log-level', dest='log_level', default='warning',
                            choices=['debug', 'info', 'warning', 'error', 'critical'],
                            help='''The logging level to use. Default: warning''')
        parser.add_argument('-c', '--config', dest='config_file', default=None,
                            help='''A JSON configuration file. Default: built-in defaults''')
        parser.add_argument('-p', '--port', type=int, default=None,
                            help='''The UDP port to bind to and to send requests to. Default: 7000''')
        parser.add_argument('-a', '--scan-address', dest='scan_address', default=None,
                            help='''The broadcast address for scan requests. Default: broadcast address of the default interface''')
        parser.add_argument('--wait-time', dest='wait_time', type=float, default=DEFAULT_WAIT_TIME,
                            help=f'''The amount of time to wait for responses, in seconds. Default: {DEFAULT_WAIT_TIME}''')
        parser.set_defaults(func=self.cmd_bare)

        subparsers = parser.add_subparsers(
                            title='Commands',
                            description='Valid commands',
                            help='Additional help available with "<command-name> -h"')


        # ======================= scan

        parser_scan = subparsers.add_parser('scan', description="Scan for Gree devices")
        parser_scan.set_defaults(func=self.cmd_scan)

        # ======================= status

        parser_status = subparsers.add_parser('status', description="Bind to devices and display their status")
        parser_status.add_argument('macs', nargs='*', default=[],
                            help='''The MAC addresses of the devices to query. Default: all devices that answer''')
        parser_status.set_defaults(func=self.cmd_status)

        # ======================= set

        parser_set = subparsers.add_parser('set', description="Send a command to a device")
        parser_set.add_argument('mac',
                            help='''The MAC address of the device''')
        parser_set.add_argument('assignments', nargs='+',
                            help='''<name>=<value> pairs, e.g. "power=on", "Mod=1", "targetTemperature=24"''')
        parser_set.set_defaults(func=self.cmd_set)

        # ======================= version

        parser_version = subparsers.add_parser('version',
                                description='''Display version information.''')
        parser_version.set_defaults(func=self.cmd_version)

        # =========================================================

        try:
            args = parser.parse_args(self._argv)
        except ArgparseExitError as ex:
            return ex.exit_code
        traceback: bool = args.traceback
        self._provide_traceback = traceback

        try:
            logging.basicConfig(
                level=logging.getLevelName(args.log_level.upper()),
            )
            self._args = args
            func: Callable[[], Awaitable[int]] = args.func
            logging.debug(f"Running command {func.__name__}, tb = {traceback}")
            rc = await func()
            logging.debug(f"Command {func.__name__} returned {rc}")
        except Exception as ex:
            if isinstance(ex, CmdExitError):
                rc = ex.exit_code
            else:
                rc = 1
            if rc != 0:
                if traceback:
                    raise
            print(f"gree-ac: error: {ex}", file=sys.stderr)
        except BaseException as ex:
            print(f"gree-ac: Unhandled exception: {ex}", file=sys.stderr)
            raise

        return rc

    def run(self) -> int:
        loop = asyncio.new_event_loop()
        try:
            asyncio.set_event_loop(loop)
            rc = loop.run_until_complete(self.arun())
        finally:
            loop.close()
        return rc

def run(argv: Optional[Sequence[str]]=None) -> int:
    try:
        rc = CommandHandler(argv).run()
    except CmdExitError as ex:
        rc = ex.exit_code
    return rc

async def arun(argv: Optional[Sequence[str]]=None) -> int:
    try:
        rc = await CommandHandler(argv).arun()
    except CmdExitError as ex:
        rc = ex.exit_code
    return rc

# allow running with "python3 -m", or as a standalone script
if __name__ == "__main__":
    sys.exit(run())
