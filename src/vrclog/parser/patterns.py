"""Compiled regex patterns for VRChat log parsing."""

import re

# Timestamp format at the start of every VRChat log line
# Example: 2024.01.15 23:59:59 Log        -  [Behaviour] ...
TIMESTAMP_FORMAT = "%Y.%m.%d %H:%M:%S"
TIMESTAMP_LENGTH = 19

TIMESTAMP_PATTERN = re.compile(r"^(\d{4}\.\d{2}\.\d{2} \d{2}:\d{2}:\d{2})")

# Player join, with optional user ID
# Example: [Behaviour] OnPlayerJoined DisplayName
# Example: [Behaviour] OnPlayerJoined DisplayName (usr_12345678-1234-1234-1234-123456789abc)
PLAYER_JOIN_PATTERN = re.compile(
    r"\[Behaviour\] OnPlayerJoined (?P<name>.+?)(?:\s+\((?P<user_id>usr_[a-f0-9-]+)\))?$"
)

# Player left (OnPlayerLeftRoom is excluded below)
# Example: [Behaviour] OnPlayerLeft DisplayName
PLAYER_LEFT_PATTERN = re.compile(r"\[Behaviour\] OnPlayerLeft (?P<name>.+)$")

# World join with world name
# Example: [Behaviour] Entering Room: World Name
ENTERING_ROOM_PATTERN = re.compile(r"\[Behaviour\] Entering Room: (?P<world_name>.+)$")

# World join with world and instance IDs
# Example: [Behaviour] Joining wrld_xxx:12345~region(us)
JOINING_PATTERN = re.compile(
    r"\[Behaviour\] Joining (?P<world_id>wrld_[a-f0-9-]+):(?P<instance_id>.+)$"
)

# Lines that look like events but are not
EXCLUSION_PATTERNS = (
    "OnPlayerJoined:",  # Different log format
    "OnPlayerLeftRoom",  # Self leaving
    "Joining or Creating",  # Not an actual join
    "Joining friend",  # Not an actual join
)
