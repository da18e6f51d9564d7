"""Contract shared by goblin_server.py and goblin_client.py."""
from dataclasses import dataclass

from avsocket import declare


@dataclass
class Goblin:
    health: int
    hungry: bool


@declare
def hurt(goblin: Goblin, damage: int) -> Goblin:
    """Subtract damage from a goblin's health."""


@declare
def add(a: int, b: int) -> int:
    """Adds two ints together."""


@declare
def sub(a: int, b: int) -> int:
    """Subtracts the second int from the first."""
