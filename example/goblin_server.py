import asyncio
import sys

from avsocket import HandlerTable, serve

import proto


def hurt(goblin: proto.Goblin, damage: int) -> proto.Goblin:
    return proto.Goblin(health=goblin.health - damage, hungry=goblin.hungry)


def main():
    # Run this first, then goblin_client.py with the same path
    path = sys.argv[1] if len(sys.argv) > 1 else "/tmp/avsocket-goblin.sock"

    table = (HandlerTable()
             .add(proto.hurt, hurt)
             .add(proto.add, lambda a, b: a + b)
             .add(proto.sub, lambda a, b: a - b))
    try:
        asyncio.run(serve(path, table))
    except KeyboardInterrupt:
        pass

if __name__ == "__main__":
    main()
