"""
Management command to delete old clips.

Removes deliverables, request logs and abandoned tmp-{id} directories from
the media directory once they pass the maximum age.
"""
from django.core.management.base import BaseCommand

from clips.service.config import get_max_age_hours, get_media_dir
from clips.service.sweep import sweep_media_dir


class Command(BaseCommand):
    help = 'Delete files in the media directory older than --max-age hours'

    def add_arguments(self, parser):
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='Show what would be deleted without actually deleting'
        )
        parser.add_argument(
            '--max-age',
            type=int,
            default=None,
            help='Maximum age in hours (default: STORECLIP_MAX_AGE_HOURS)'
        )

    def handle(self, *args, **options):
        dry_run = options['dry_run']
        max_age = options['max_age'] if options['max_age'] is not None else get_max_age_hours()
        media_dir = get_media_dir()

        result = sweep_media_dir(
            media_dir,
            max_age_hours=max_age,
            dry_run=dry_run,
            logger=self.stdout.write,
        )

        if not result.deleted and not result.failed:
            self.stdout.write(self.style.SUCCESS(f"Nothing older than {max_age} hours in {media_dir}"))
            return

        size_mb = result.freed_bytes / (1024 * 1024)
        count = len(result.deleted)
        if dry_run:
            for entry in result.deleted:
                self.stdout.write(f"  {entry.path.name:50} | Age: {entry.age_seconds / 3600:6.1f} h")
            self.stdout.write(self.style.WARNING(
                f"\nDRY RUN: Would delete {count} entr{'ies' if count != 1 else 'y'} ({size_mb:.1f} MB)"
            ))
            return

        for path in result.failed:
            self.stdout.write(self.style.ERROR(f"✗ Failed to delete {path.name}"))
        self.stdout.write(self.style.SUCCESS(
            f"✓ Deleted {count} entr{'ies' if count != 1 else 'y'} ({size_mb:.1f} MB)"
        ))
