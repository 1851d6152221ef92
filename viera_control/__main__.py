#!/usr/bin/env python3

# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

from __future__ import annotations

import os
import sys
import argparse
import json
import asyncio
import logging

from viera_control.internal_types import *

from viera_control import (
    __version__ as pkg_version,
    ActionKey,
    DeviceIdentity,
    Television,
    TelevisionClientConfig,
    TelevisionDiscovery,
    PairingChallenge,
  )

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

def _print_json(value: Jsonable) -> None:
    print(json.dumps(value, indent=2, sort_keys=True))
    sys.stdout.flush()

class CommandHandler:
    _argv: Optional[Sequence[str]]
    _parser: argparse.ArgumentParser
    _args: argparse.Namespace
    _provide_traceback: bool = True
    _config: TelevisionClientConfig

    def __init__(self, argv: Optional[Sequence[str]]=None):
        self._argv = argv

    async def cmd_bare(self) -> int:
        print("A command is required", file=sys.stderr)
        return 1

    def get_identity(self) -> DeviceIdentity:
        host: Optional[str] = self._args.host
        if host is None or host == '':
            raise CmdExitError(1, "A television host is required (--host or VIERA_HOST)")
        port: int = self._config.default_port if self._args.port is None else self._args.port
        device_id: str = host if self._args.device_id is None else self._args.device_id
        return DeviceIdentity(
            device_id,
            host,
            port=port,
            app_id=self._args.app_id,
            pairing_key=self._args.pairing_key,
            mac_address=self._args.mac,
          )

    def create_television(self) -> Television:
        return Television(self.get_identity(), config=self._config)

    async def cmd_discover(self) -> int:
        wait_time: Optional[float] = self._args.wait_time
        enrich: bool = not self._args.no_enrich
        async with TelevisionDiscovery(timeout=wait_time, config=self._config, enrich=enrich) as discovery:
            async for device in discovery:
                _print_json(device.to_jsonable())
        return 0

    async def cmd_specs(self) -> int:
        async with self.create_television() as tv:
            specs = await tv.get_specs()
        _print_json(specs.to_jsonable())
        return 0

    async def cmd_apps(self) -> int:
        async with self.create_television() as tv:
            apps = await tv.get_apps()
        _print_json([ app.to_jsonable() for app in apps ])
        return 0

    async def cmd_volume(self) -> int:
        volume: Optional[int] = self._args.volume
        async with self.create_television() as tv:
            if volume is None:
                print(await tv.get_volume())
            else:
                await tv.set_volume(volume)
        return 0

    async def cmd_mute(self) -> int:
        state: Optional[str] = self._args.state
        async with self.create_television() as tv:
            if state is None:
                print("on" if await tv.get_mute() else "off")
            else:
                await tv.set_mute(state == 'on')
        return 0

    async def cmd_key(self) -> int:
        keys: List[str] = self._args.keys
        # parse all keys before sending any
        actions = [ ActionKey.parse(k) for k in keys ]
        async with self.create_television() as tv:
            for action in actions:
                await tv.send_key(action)
        return 0

    async def cmd_launch(self) -> int:
        app_id: str = self._args.app_id_to_launch
        async with self.create_television() as tv:
            await tv.launch_app(app_id)
        return 0

    async def cmd_hdmi(self) -> int:
        input_number: int = self._args.input_number
        async with self.create_television() as tv:
            await tv.select_hdmi(input_number)
        return 0

    async def cmd_power(self) -> int:
        action: str = self._args.action
        async with self.create_television() as tv:
            if action == 'on':
                await tv.turn_on()
            elif action == 'off':
                await tv.turn_off()
            elif action == 'wake':
                await tv.wake_on_lan()
            else:
                print("on" if await tv.is_turned_on() else "off")
        return 0

    async def cmd_pair_request(self) -> int:
        name: str = self._args.name
        async with self.create_television() as tv:
            challenge = await tv.request_pin_code(name)
        _print_json({ "challenge_key": challenge.challenge_key })
        return 0

    async def cmd_pair_authorize(self) -> int:
        challenge = PairingChallenge(self._args.challenge_key)
        pin: str = self._args.pin
        async with self.create_television() as tv:
            result = await tv.authorize_pin_code(pin, challenge)
        _print_json(result.to_jsonable())
        return 0

    async def cmd_version(self) -> int:
        print(pkg_version)
        return 0

    async def arun(self) -> int:
        """Run the viera-control command-line tool with provided arguments

        Args:
            argv (Optional[Sequence[str]], optional):
                A list of commandline arguments (NOT including the program as argv[0]!),
                or None to use sys.argv[1:]. Defaults to None.

        Returns:
            int: The exit code that would be returned if this were run as a standalone command.
        """
        parser = NoExitArgumentParser(description="Control a Panasonic VIERA television.")


        # ======================= Main command

        self._parser = parser
        parser.add_argument('--traceback', "--tb", action='store_true', default=False,
                            help='Display detailed exception information')
        parser.add_argument('--log-level', dest='log_level', default='warning',
                            choices=['debug', 'info', 'warning', 'error', 'critical'],
                            help='''The logging level to use. Default: warning''')
        parser.add_argument('--host', default=os.environ.get('VIERA_HOST'),
                            help='''The television's hostname or IP address. Default: $VIERA_HOST''')
        parser.add_argument('--port', type=int, default=None,
                            help='''The television's control port. Default: $VIERA_PORT, or 55000''')
        parser.add_argument('--device-id', dest='device_id', default=os.environ.get('VIERA_DEVICE_ID'),
                            help='''A stable id for the television. Default: $VIERA_DEVICE_ID, or the host''')
        parser.add_argument('--app-id', dest='app_id', default=os.environ.get('VIERA_APP_ID'),
                            help='''The application id issued by pairing. Default: $VIERA_APP_ID''')
        parser.add_argument('--pairing-key', dest='pairing_key', default=os.environ.get('VIERA_PAIRING_KEY'),
                            help='''The pairing key issued by pairing. Default: $VIERA_PAIRING_KEY''')
        parser.add_argument('--mac', default=os.environ.get('VIERA_MAC'),
                            help='''The television's MAC address, for wake-on-LAN. Default: $VIERA_MAC''')
        parser.set_defaults(func=self.cmd_bare)

        subparsers = parser.add_subparsers(
                            title='Commands',
                            description='Valid commands',
                            help='Additional help available with "<command-name> -h"')


        # ======================= discover

        parser_discover = subparsers.add_parser('discover', description="Search for televisions on the local network")
        parser_discover.add_argument('--wait-time', dest='wait_time', type=float, default=None,
                            help='''The amount of time to wait for responses, in seconds. Default: $VIERA_DISCOVERY_TIMEOUT, or 5''')
        parser_discover.add_argument('--no-enrich', dest='no_enrich', action='store_true', default=False,
                            help='''Do not read device descriptions or application lists''')
        parser_discover.set_defaults(func=self.cmd_discover)

        # ======================= specs

        parser_specs = subparsers.add_parser('specs', description="Display the television's device description")
        parser_specs.set_defaults(func=self.cmd_specs)

        # ======================= apps

        parser_apps = subparsers.add_parser('apps', description="List installed applications")
        parser_apps.set_defaults(func=self.cmd_apps)

        # ======================= volume

        parser_volume = subparsers.add_parser('volume', description="Display or set the volume")
        parser_volume.add_argument('volume', type=int, nargs='?', default=None,
                            help='''The volume to set, 0-100. If omitted, the current volume is displayed.''')
        parser_volume.set_defaults(func=self.cmd_volume)

        # ======================= mute

        parser_mute = subparsers.add_parser('mute', description="Display or set the mute state")
        parser_mute.add_argument('state', nargs='?', default=None, choices=['on', 'off'],
                            help='''The mute state to set. If omitted, the current state is displayed.''')
        parser_mute.set_defaults(func=self.cmd_mute)

        # ======================= key

        parser_key = subparsers.add_parser('key', description="Send one or more remote control keys")
        parser_key.add_argument('keys', nargs='+',
                            help='''Key names (e.g. "volume_up", "power") or raw codes (e.g. "NRC_MUTE-ONOFF")''')
        parser_key.set_defaults(func=self.cmd_key)

        # ======================= launch

        parser_launch = subparsers.add_parser('launch', description="Launch an application")
        parser_launch.add_argument('app_id_to_launch', metavar='APP_ID',
                            help='''The application's product id, as listed by "apps"''')
        parser_launch.set_defaults(func=self.cmd_launch)

        # ======================= hdmi

        parser_hdmi = subparsers.add_parser('hdmi', description="Switch to an HDMI input")
        parser_hdmi.add_argument('input_number', type=int, help='''The HDMI input number, starting at 1''')
        parser_hdmi.set_defaults(func=self.cmd_hdmi)

        # ======================= power

        parser_power = subparsers.add_parser('power', description="Display or change the power state")
        parser_power.add_argument('action', nargs='?', default='status', choices=['on', 'off', 'wake', 'status'],
                            help='''The power action. Default: status''')
        parser_power.set_defaults(func=self.cmd_power)

        # ======================= pair

        parser_pair_request = subparsers.add_parser('pair-request',
                                description="Ask the television to display a PIN, and print the challenge key")
        parser_pair_request.add_argument('name', help='''The name the television displays for this client''')
        parser_pair_request.set_defaults(func=self.cmd_pair_request)

        parser_pair_authorize = subparsers.add_parser('pair-authorize',
                                description="Authorize a displayed PIN, and print the app id and pairing key")
        parser_pair_authorize.add_argument('challenge_key', help='''The challenge key printed by "pair-request"''')
        parser_pair_authorize.add_argument('pin', help='''The PIN displayed on the television''')
        parser_pair_authorize.set_defaults(func=self.cmd_pair_authorize)

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
            self._config = TelevisionClientConfig.from_env()
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
            print(f"viera-control: error: {ex}", file=sys.stderr)
        except BaseException as ex:
            print(f"viera-control: Unhandled exception: {ex}", file=sys.stderr)
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
