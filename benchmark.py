import asyncio
import time

from cqrs_event_sourcing import ConcurrencyConflict, Event
from cqrs_event_sourcing.adaptors.sqlite import sqlite_event_log


def make_batch(aggregate_id, first_version, batch_size):
    return [
        Event(
            aggregate_id=aggregate_id,
            aggregate_name="bench",
            type="bench/recorded",
            payload={"n": first_version + i},
            timestamp=int(time.time() * 1000),
            aggregate_version=first_version + i,
        )
        for i in range(batch_size)
    ]


async def write_aggregate(log, aggregate_id, num_batches, batch_size):
    for batch in range(num_batches):
        await log.append_all(make_batch(aggregate_id, batch * batch_size + 1, batch_size))


async def run_benchmark(num_events, batch_size, num_aggregates=10):
    async with sqlite_event_log(":memory:") as log:
        per_aggregate = num_events // num_aggregates // batch_size
        tasks = [
            write_aggregate(log, f"aggregate-{n}", per_aggregate, batch_size)
            for n in range(num_aggregates)
        ]
        start_time = time.time()
        await asyncio.gather(*tasks)
        duration = time.time() - start_time

        written = per_aggregate * batch_size * num_aggregates
        print(f"Total time for {written} events: {duration:.2f} seconds")
        print(f"Events per second: {written / duration:.2f}")

        # A stale writer must be refused by the (aggregate_id, version) constraint.
        try:
            await log.append_all(make_batch("aggregate-0", 1, 1))
        except ConcurrencyConflict as e:
            print(f"Conflicting append rejected: {e.message}")


if __name__ == "__main__":
    asyncio.run(run_benchmark(num_events=10_000, batch_size=100))
