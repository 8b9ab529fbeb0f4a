import cmd
import shlex
from perks.models import CardPatch, PerkPatch, Cadence
from perks.periods import current_month, format_cadence, parse_month, period_bounds, shift_month
from perks.storage import SnapshotFormatError, export_snapshot_file, parse_snapshot, read_snapshot_file
from perks.sync import DriveClient, DriveSync, SyncError
from perks.tracker import PerkTracker


CADENCES = [c.value for c in Cadence]


class PerksCLI(cmd.Cmd):
    prompt = "(perks) "

    def __init__(self, tracker: PerkTracker):
        super().__init__()
        self.tracker = tracker
        self.year, self.month = current_month()
        self.intro = "Welcome to Perk Tracker. Type 'help' for commands."

    def emptyline(self):
        pass

    # ===== CHECKLIST =====
    def do_checklist(self, arg):
        """Show the perk checklist for the selected month: checklist"""
        print(f"\n{' ' + self._month_title() + ' ':-^50}")
        groups = self.tracker.checklist(self.year, self.month)
        if not groups:
            print("No perks to track. Add a card and some perks first.")
            return

        for group in groups:
            print(f"\n{group.card.name}" + (f" ({group.card.issuer})" if group.card.issuer else ""))
            for item in group.items:
                mark = "x" if item.is_completed else " "
                _, end = period_bounds(item.perk.cadence, self.year, self.month)
                print(f"  [{mark}] {item.perk.name}  {item.usage}/{item.limit}  "
                      f"{format_cadence(item.perk.cadence)} (resets after {end.isoformat()})  "
                      f"id={item.perk.id}")
                if item.perk.description:
                    print(f"      {item.perk.description}")

    def do_month(self, arg):
        """Select the checklist month: month [YYYY-MM|next|prev]"""
        arg = arg.strip()
        try:
            if arg == "next":
                self.year, self.month = shift_month(self.year, self.month, 1)
            elif arg == "prev":
                self.year, self.month = shift_month(self.year, self.month, -1)
            elif arg:
                self.year, self.month = parse_month(arg)
            print(f"Month: {self._month_title()}")
        except ValueError as e:
            print(f"Invalid input: {e}")

    def do_check(self, arg):
        """Mark one use of a perk in the selected month: check <perk_id>"""
        self._toggle(arg, True)

    def do_uncheck(self, arg):
        """Undo one use of a perk in the selected month: uncheck <perk_id>"""
        self._toggle(arg, False)

    def do_reset(self, arg):
        """Clear a perk's usage for the period containing the selected month: reset <perk_id>"""
        perk_id = arg.strip()
        if not perk_id:
            print("Usage: reset <perk_id>")
            return
        if self.tracker.reset_usage(perk_id, self.year, self.month):
            print(f"✓ Reset usage for perk {perk_id}")
        else:
            print(f"Perk not found: {perk_id}")

    def _toggle(self, arg, checked):
        perk_id = arg.strip()
        if not perk_id:
            print(f"Usage: {'check' if checked else 'uncheck'} <perk_id>")
            return
        perk = self.tracker.registry.get_perk(perk_id)
        if perk is None:
            print(f"Perk not found: {perk_id}")
            return
        usage = self.tracker.toggle(perk_id, self.year, self.month, checked)
        status = " (completed)" if usage >= perk.limit else ""
        print(f"✓ {perk.name}: {usage}/{perk.limit}{status}")

    # ===== CARD MANAGEMENT =====
    def do_card(self, arg):
        """
        Manage cards:
            card add <name> [--issuer NAME] [--color #RRGGBB]
            card edit <id> [--name NAME] [--issuer NAME] [--color #RRGGBB]
            card delete <id>
            card list
        """
        try:
            args = shlex.split(arg)
            if not args:
                print(self.do_card.__doc__)
            elif args[0] == "add":
                if len(args) < 2:
                    raise ValueError("Missing card name")
                opts = self._parse_options(args[2:], ("issuer", "color"))
                card = self.tracker.add_card(args[1], opts.get("issuer", ""), opts.get("color"))
                print(f"✓ Added card: {card.name} (id={card.id})")
            elif args[0] == "edit":
                if len(args) < 2:
                    raise ValueError("Missing card id")
                opts = self._parse_options(args[2:], ("name", "issuer", "color"))
                card = self.tracker.update_card(args[1], CardPatch(**opts))
                print(f"✓ Updated card: {card.name}" if card else f"Card not found: {args[1]}")
            elif args[0] == "delete":
                if len(args) < 2:
                    raise ValueError("Missing card id")
                count = len(self.tracker.registry.perks_for_card(args[1]))
                if not self._confirm(f"Delete this card and its {count} perk(s)?"):
                    return
                if self.tracker.delete_card(args[1]):
                    print(f"✓ Deleted card {args[1]}")
                else:
                    print(f"Card not found: {args[1]}")
            elif args[0] == "list":
                if not self.tracker.cards:
                    print("No credit cards yet")
                    return
                print("\nCards:")
                for card in self.tracker.cards:
                    print(f"  {card.id}  {card.name}  {card.issuer or 'No issuer specified'}  {card.color}")
            else:
                print(self.do_card.__doc__)
        except ValueError as e:
            print(f"Invalid input: {e}")

    # ===== PERK MANAGEMENT =====
    def do_perk(self, arg):
        """
        Manage perks:
            perk add <card_id> <name> [--limit N] [--cadence monthly|quarterly|semi-annually|annually] [--desc TEXT]
            perk edit <id> [--card ID] [--name NAME] [--limit N] [--cadence CADENCE] [--desc TEXT]
            perk delete <id>
            perk list
        """
        try:
            args = shlex.split(arg)
            if not args:
                print(self.do_perk.__doc__)
            elif args[0] == "add":
                if len(args) < 3:
                    raise ValueError("Missing card id or perk name")
                opts = self._parse_perk_options(args[3:])
                perk = self.tracker.add_perk(
                    card_id=args[1],
                    name=args[2],
                    description=opts.get("description", ""),
                    limit=opts.get("limit", 1),
                    cadence=opts.get("cadence", Cadence.MONTHLY.value),
                )
                print(f"✓ Added perk: {perk.name} (id={perk.id})")
            elif args[0] == "edit":
                if len(args) < 2:
                    raise ValueError("Missing perk id")
                opts = self._parse_perk_options(args[2:])
                perk = self.tracker.update_perk(args[1], PerkPatch(**opts))
                print(f"✓ Updated perk: {perk.name}" if perk else f"Perk not found: {args[1]}")
            elif args[0] == "delete":
                if len(args) < 2:
                    raise ValueError("Missing perk id")
                if self.tracker.delete_perk(args[1]):
                    print(f"✓ Deleted perk {args[1]}")
                else:
                    print(f"Perk not found: {args[1]}")
            elif args[0] == "list":
                if not self.tracker.perks:
                    print("No perks yet")
                    return
                print("\nPerks:")
                for perk in self.tracker.perks:
                    print(f"  {perk.id}  {perk.name}  card: {self.tracker.registry.card_label(perk)}  "
                          f"limit: {perk.limit} per period  resets: {format_cadence(perk.cadence)}")
            else:
                print(self.do_perk.__doc__)
        except ValueError as e:
            print(f"Invalid input: {e}")

    # ===== DATA MANAGEMENT =====
    def do_export(self, arg):
        """Export all data to a backup file: export [directory]"""
        try:
            path = export_snapshot_file(self.tracker.export_snapshot(), arg.strip() or ".")
            print(f"✓ Data exported to {path}")
        except OSError as e:
            print(f"Export failed: {e}")

    def do_import(self, arg):
        """Replace all data with a backup file: import <file>"""
        path = arg.strip()
        if not path:
            print("Usage: import <file>")
            return
        try:
            data = read_snapshot_file(path)
            parse_snapshot(data)
            if not self._confirm("This will replace all current data. Continue?"):
                return
            self.tracker.import_snapshot(data)
            print("✓ Data imported successfully!")
        except (OSError, SnapshotFormatError) as e:
            print(f"Import failed: {e}")

    def do_stats(self, arg):
        """Show how much data is stored: stats"""
        stats = self.tracker.data_stats()
        print(f"Cards: {stats['cards']}")
        print(f"Perks: {stats['perks']}")
        print(f"Usage records: {stats['usage']}")

    def do_clear(self, arg):
        """Permanently delete all cards, perks and usage: clear"""
        if not self._confirm("This will permanently delete ALL your data (cards, perks, usage). Are you sure?"):
            return
        if not self._confirm("Are you REALLY sure? This action is irreversible!"):
            return
        self.tracker.clear_all()
        print("All data has been cleared.")

    # ===== GOOGLE DRIVE =====
    def do_connect(self, arg):
        """Connect to Google Drive with an OAuth access token: connect <token>"""
        token = arg.strip()
        if not token:
            print("Usage: connect <token>")
            return
        self.tracker.connect(DriveSync(DriveClient(token), self.tracker.store))
        print("Connected to Google Drive!")

    def do_disconnect(self, arg):
        """Disconnect from Google Drive: disconnect"""
        self.tracker.disconnect()
        print("Disconnected from Google Drive")

    def do_push(self, arg):
        """Save all data to Google Drive: push"""
        try:
            self.tracker.push()
            print("Saved to Google Drive successfully!")
        except SyncError as e:
            print(f"Save failed: {e}")

    def do_pull(self, arg):
        """Replace all data with the Google Drive backup: pull"""
        try:
            data = self.tracker.pull()
            if data is None:
                print("No backup found on Google Drive")
                return
            if not self._confirm("This will replace all current data with data from Google Drive. Continue?"):
                return
            self.tracker.import_snapshot(data)
            print("Loaded from Google Drive successfully!")
        except (SyncError, SnapshotFormatError) as e:
            print(f"Load failed: {e}")

    def do_autosync(self, arg):
        """Push to Google Drive after every change: autosync on|off"""
        arg = arg.strip().lower()
        if arg not in ("on", "off"):
            print(f"Auto-sync is {'on' if self.tracker.auto_sync else 'off'}")
            return
        self.tracker.set_auto_sync(arg == "on")
        print(f"Auto-sync {'enabled' if arg == 'on' else 'disabled'}")

    # ===== UTILITIES =====
    def do_exit(self, arg):
        """Exit the program"""
        print("Goodbye!")
        return True

    do_EOF = do_exit

    # ===== HELPERS =====
    def _month_title(self):
        return f"{self.year}-{self.month:02d}"

    @staticmethod
    def _confirm(question):
        try:
            return input(f"{question} [y/N] ").strip().lower() in ("y", "yes")
        except EOFError:
            return False

    @staticmethod
    def _parse_options(args, allowed):
        """Parse --flag VALUE pairs into a dict"""
        result = {}
        i = 0
        while i < len(args):
            flag = args[i]
            if not flag.startswith("--") or flag[2:] not in allowed:
                raise ValueError(f"Unknown flag: {flag}")
            if i + 1 >= len(args):
                raise ValueError(f"Missing value after {flag}")
            result[flag[2:]] = args[i + 1]
            i += 2
        return result

    def _parse_perk_options(self, args):
        opts = self._parse_options(args, ("card", "name", "limit", "cadence", "desc"))
        result = {}
        if "card" in opts:
            result["card_id"] = opts["card"]
        if "name" in opts:
            result["name"] = opts["name"]
        if "desc" in opts:
            result["description"] = opts["desc"]
        if "limit" in opts:
            try:
                result["limit"] = int(opts["limit"])
            except ValueError:
                raise ValueError("Limit must be a whole number")
        if "cadence" in opts:
            if opts["cadence"] not in CADENCES:
                raise ValueError(f"Invalid cadence, use: {'/'.join(CADENCES)}")
            result["cadence"] = opts["cadence"]
        return result
