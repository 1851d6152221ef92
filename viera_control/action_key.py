# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""Remote-control key codes accepted by X_SendKey"""

from __future__ import annotations

import re
from enum import Enum

from .internal_types import *
from .exceptions import InvalidArgument

_raw_key_code_re = re.compile(r"NRC_[A-Z0-9_-]+")

class ActionKey(Enum):
    """A key on the television's remote control. The value is the code sent in X_KeyEvent."""

    THIRTY_SECOND_SKIP = "NRC_30S_SKIP-ONOFF"
    TOGGLE_3D = "NRC_3D-ONOFF"
    APPS = "NRC_APPS-ONOFF"
    ASPECT = "NRC_ASPECT-ONOFF"
    BLUE = "NRC_BLUE-ONOFF"
    CANCEL = "NRC_CANCEL-ONOFF"
    CC = "NRC_CC-ONOFF"
    CHAT_MODE = "NRC_CHAT_MODE-ONOFF"
    CH_DOWN = "NRC_CH_DOWN-ONOFF"
    INPUT = "NRC_CHG_INPUT-ONOFF"
    NETWORK = "NRC_CHG_NETWORK-ONOFF"
    CH_UP = "NRC_CH_UP-ONOFF"
    NUM_0 = "NRC_D0-ONOFF"
    NUM_1 = "NRC_D1-ONOFF"
    NUM_2 = "NRC_D2-ONOFF"
    NUM_3 = "NRC_D3-ONOFF"
    NUM_4 = "NRC_D4-ONOFF"
    NUM_5 = "NRC_D5-ONOFF"
    NUM_6 = "NRC_D6-ONOFF"
    NUM_7 = "NRC_D7-ONOFF"
    NUM_8 = "NRC_D8-ONOFF"
    NUM_9 = "NRC_D9-ONOFF"
    DIGA_CONTROL = "NRC_DIGA_CTL-ONOFF"
    DISPLAY = "NRC_DISP_MODE-ONOFF"
    DOWN = "NRC_DOWN-ONOFF"
    ENTER = "NRC_ENTER-ONOFF"
    EPG = "NRC_EPG-ONOFF"
    EZ_SYNC = "NRC_EZ_SYNC-ONOFF"
    FAVORITE = "NRC_FAVORITE-ONOFF"
    FAST_FORWARD = "NRC_FF-ONOFF"
    GAME = "NRC_GAME-ONOFF"
    GREEN = "NRC_GREEN-ONOFF"
    GUIDE = "NRC_GUIDE-ONOFF"
    HOLD = "NRC_HOLD-ONOFF"
    HOME = "NRC_HOME-ONOFF"
    INDEX = "NRC_INDEX-ONOFF"
    INFO = "NRC_INFO-ONOFF"
    CONNECT = "NRC_INTERNET-ONOFF"
    LEFT = "NRC_LEFT-ONOFF"
    MENU = "NRC_MENU-ONOFF"
    MPX = "NRC_MPX-ONOFF"
    MUTE = "NRC_MUTE-ONOFF"
    NET_BS = "NRC_NET_BS-ONOFF"
    NET_CS = "NRC_NET_CS-ONOFF"
    NET_TD = "NRC_NET_TD-ONOFF"
    OFF_TIMER = "NRC_OFFTIMER-ONOFF"
    PAUSE = "NRC_PAUSE-ONOFF"
    PICTAI = "NRC_PICTAI-ONOFF"
    PLAY = "NRC_PLAY-ONOFF"
    P_NR = "NRC_P_NR-ONOFF"
    POWER = "NRC_POWER-ONOFF"
    PROGRAM = "NRC_PROG-ONOFF"
    RECORD = "NRC_REC-ONOFF"
    RED = "NRC_RED-ONOFF"
    RETURN = "NRC_RETURN-ONOFF"
    REWIND = "NRC_REW-ONOFF"
    RIGHT = "NRC_RIGHT-ONOFF"
    R_SCREEN = "NRC_R_SCREEN-ONOFF"
    LAST_VIEW = "NRC_R_TUNE-ONOFF"
    SAP = "NRC_SAP-ONOFF"
    TOGGLE_SD_CARD = "NRC_SD_CARD-ONOFF"
    SKIP_NEXT = "NRC_SKIP_NEXT-ONOFF"
    SKIP_PREV = "NRC_SKIP_PREV-ONOFF"
    SPLIT = "NRC_SPLIT-ONOFF"
    STOP = "NRC_STOP-ONOFF"
    SUBTITLES = "NRC_STTL-ONOFF"
    OPTION = "NRC_SUBMENU-ONOFF"
    SURROUND = "NRC_SURROUND-ONOFF"
    SWAP = "NRC_SWAP-ONOFF"
    TEXT = "NRC_TEXT-ONOFF"
    TV = "NRC_TV-ONOFF"
    UP = "NRC_UP-ONOFF"
    LINK = "NRC_VIERA_LINK-ONOFF"
    VOLUME_DOWN = "NRC_VOLDOWN-ONOFF"
    VOLUME_UP = "NRC_VOLUP-ONOFF"
    VTOOLS = "NRC_VTOOLS-ONOFF"
    YELLOW = "NRC_YELLOW-ONOFF"
    AD_CHANGE = "NRC_AD_CHANGE-ONOFF"

    @classmethod
    def parse(cls, name: Union[str, ActionKey]) -> ActionKey:
        """Looks up a key by member name (case-insensitive, e.g. "volume_up") or by raw code
           (e.g. "NRC_VOLUP-ONOFF").

        Raises InvalidArgument if there is no such key.
        """
        if isinstance(name, ActionKey):
            return name
        try:
            return cls[name.upper().replace('-', '_')]
        except KeyError:
            pass
        try:
            return cls(name)
        except ValueError as e:
            raise InvalidArgument(f"Unknown remote-control key: {name!r}") from e

def hdmi_key(input_number: int) -> str:
    """Returns the key code that selects HDMI input input_number."""
    if input_number < 1:
        raise InvalidArgument(f"HDMI input must be 1 or greater, got {input_number}")
    return f"NRC_HDMI{input_number}-ONOFF"

def key_code(key: Union[ActionKey, str]) -> str:
    """Returns the raw code for an ActionKey, or a raw NRC_ code passed through unchanged.

    Raw codes may contain only upper-case letters, digits, "_" and "-".
    """
    if isinstance(key, ActionKey):
        return key.value
    if key.startswith("NRC_"):
        if not _raw_key_code_re.fullmatch(key):
            raise InvalidArgument(f"Invalid remote-control key code: {key!r}")
        return key
    return ActionKey.parse(key).value
