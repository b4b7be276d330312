import argparse
import asyncio
import os
import tempfile
import time

from cqrs_event_sourcing import Aggregate, Projection, ViewModel, cqrs_service_factory

COUNTER_INCREMENTED = "counter/incremented"


def build_counter() -> Aggregate:
    projection = Projection(init=lambda: {"count": 0})

    @projection.on(COUNTER_INCREMENTED)
    def incremented(state, event):
        return {"count": state["count"] + event.payload["by"]}

    def increment(state, payload, aggregate_id):
        return {"type": COUNTER_INCREMENTED, "payload": {"by": payload.get("by", 1)}}

    return Aggregate.define(
        name="counter",
        projection=projection,
        commands={"increment": increment},
        events=[COUNTER_INCREMENTED],
    )


async def benchmark(num_events: int):
    print(f"Benchmarking with {num_events} events...")

    async def run_mode(config: dict, num_events: int):
        async with cqrs_service_factory(config) as create_service:
            seen = []
            create_service.bus.register(ViewModel("counter-view", {COUNTER_INCREMENTED: seen.append}))
            counter = create_service("counter", build_counter())
            internals = create_service("internals")

            # --- Command benchmark ---
            start_command = time.perf_counter()
            for _ in range(num_events):
                await counter.command("bench-counter", "increment", {"by": 1})
            command_time = time.perf_counter() - start_command

            # --- Read-model benchmark ---
            start_read = time.perf_counter()
            state = await counter.read_model("bench-counter")
            read_time = time.perf_counter() - start_read
            assert state["count"] == num_events

            # --- Replay benchmark ---
            seen.clear()
            start_replay = time.perf_counter()
            result = await internals.replay(["counter-view"])
            replay_time = time.perf_counter() - start_replay
            assert result.event_count == len(seen) == num_events

        return command_time, read_time, replay_time

    def throughput(elapsed: float) -> float:
        return num_events / elapsed if elapsed > 0 else 0

    memory_config = {"db_path": ":memory:", "replay_delay_ms": 0}
    mem_times = await run_mode(memory_config, num_events)

    with tempfile.TemporaryDirectory() as tmpdir:
        file_config = {"db_path": os.path.join(tmpdir, "bench.db"), "replay_delay_ms": 0}
        file_times = await run_mode(file_config, num_events)

    print(f"\n--- Results for {num_events} events ---")
    for label, (command_time, read_time, replay_time) in (
        ("In-memory SQLite ", mem_times),
        ("File-based SQLite", file_times),
    ):
        print(
            f"{label} - Command: {command_time:.4f}s ({throughput(command_time):,.0f} events/s), "
            f"Read model: {read_time:.4f}s ({throughput(read_time):,.0f} events/s), "
            f"Replay: {replay_time:.4f}s ({throughput(replay_time):,.0f} events/s)"
        )


async def main():
    parser = argparse.ArgumentParser()
    parser.add_argument("--num-events", type=int, default=1000)
    args = parser.parse_args()
    await benchmark(args.num_events)


if __name__ == "__main__":
    asyncio.run(main())
