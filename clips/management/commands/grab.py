"""
Django management command for grabbing a storefront clip.

This is a thin CLI wrapper around the clip_service.
"""
import json
import sys

from django.core.management.base import BaseCommand, CommandError

from clips.service.clip_service import process_share_link
from clips.service.errors import ClipError
from clips.service.rank import describe
from clips.service.session import resolve


class Command(BaseCommand):
    help = 'Resolve a share link, download the best video and transcode it'

    def add_arguments(self, parser):
        parser.add_argument(
            'link',
            type=str,
            help='Share link (may be percent-encoded or wrapped in ?redir=)'
        )
        parser.add_argument(
            '--outdir',
            type=str,
            default=None,
            help='Output directory (default: STORECLIP_MEDIA_DIR)'
        )
        parser.add_argument(
            '--user',
            type=str,
            default=None,
            help='User id to check against the usage ledger'
        )
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='Resolve and rank candidates without downloading'
        )
        parser.add_argument(
            '--verbose',
            action='store_true',
            help='Enable verbose output'
        )
        parser.add_argument(
            '--json',
            action='store_true',
            help='Output result as JSON'
        )

    def handle(self, *args, **options):
        link = options['link']
        verbose = options['verbose']
        output_json = options['json']

        def logger(message):
            if verbose:
                self.stderr.write(message)

        if options['dry_run']:
            try:
                selection = resolve(link, logger=logger)
            except ClipError as e:
                raise CommandError(f"Dry run failed: {e}")

            if output_json:
                self.stdout.write(json.dumps({
                    'dry_run': True,
                    'selected': selection.selected.location,
                    'candidates': [c.location for c in selection.candidates],
                }, indent=2))
            else:
                self.stdout.write(self.style.WARNING("DRY RUN MODE - Nothing will be downloaded"))
                self.stdout.write(describe(selection))
            return

        result = process_share_link(
            link,
            user_id=options['user'],
            outdir=options['outdir'],
            logger=logger,
        )

        if output_json:
            self.stdout.write(json.dumps(result.as_dict(), indent=2))
            if not result.success:
                sys.exit(1)
            return

        if not result.success:
            raise CommandError(result.error)

        self.stdout.write(self.style.SUCCESS("✓ Clip ready"))
        self.stdout.write(f"  Source: {result.source_location}")
        self.stdout.write(f"  Output: {result.file_path}")
        if result.resolution:
            self.stdout.write(f"  Resolution: {result.resolution[0]}x{result.resolution[1]}")
        self.stdout.write(f"  Transcoded: {'No (fallback)' if result.used_fallback else 'Yes'}")
