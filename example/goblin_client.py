import asyncio
import sys

from avsocket import Dispatcher

import proto


async def run(path: str):
    async with await Dispatcher.connect(path) as client:
        goblin = await client.dispatch(proto.hurt(proto.Goblin(health=20, hungry=True), 23))
        print("hurt ->", goblin)

        # several calls in flight on one connection
        sums = await asyncio.gather(*(client.dispatch(proto.add(i, 23)) for i in range(5)))
        print("add ->", sums)
        print("sub ->", await client.invoke(proto.sub, (5, 23)))


def main():
    path = sys.argv[1] if len(sys.argv) > 1 else "/tmp/avsocket-goblin.sock"
    asyncio.run(run(path))

if __name__ == "__main__":
    main()
