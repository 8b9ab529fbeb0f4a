import logging
import os

from perks.cli import PerksCLI
from perks.storage import DATA_DIR, JsonFileStore
from perks.sync import DRIVE_TOKEN, DriveClient, DriveSync
from perks.tracker import PerkTracker


def main():
    logging.basicConfig(
        level=os.environ.get("PERKS_LOG_LEVEL", "WARNING").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    store = JsonFileStore(DATA_DIR)
    sync = DriveSync(DriveClient(DRIVE_TOKEN), store) if DRIVE_TOKEN else None
    PerksCLI(PerkTracker(store, sync)).cmdloop()


if __name__ == "__main__":
    main()
