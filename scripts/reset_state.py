"""Clear stored inventory, projects and preferences from Redis.

Conversations are kept unless ``--all`` is passed, which empties the
whole database.
"""

import asyncio
import sys

from iot_oracle.state.manager import StateManager
from iot_oracle.state.repository import AUTO_POPULATE_KEY, INVENTORY_KEY, PROJECTS_KEY


async def reset_state(everything: bool) -> None:
    scope = "ALL data" if everything else "inventory, projects and preferences"
    print(f"\nThis will delete {scope} from Redis.")
    if input("Continue? (yes/no): ").lower() != "yes":
        print("Cancelled.")
        return

    state_manager = StateManager()
    await state_manager.connect()
    if everything:
        await state_manager.flush()
    else:
        for key in (INVENTORY_KEY, PROJECTS_KEY, AUTO_POPULATE_KEY):
            await state_manager.delete(key)
    await state_manager.disconnect()

    print(f"Cleared {scope}.\n")


if __name__ == "__main__":
    asyncio.run(reset_state("--all" in sys.argv[1:]))
