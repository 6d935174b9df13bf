# hospitals/management/commands/match_donors.py
"""
Rank donors for a blood request from the command line.

USAGE:
    python manage.py match_donors 42
    python manage.py match_donors 42 --radius 30 --eligible-only
    python manage.py match_donors 42 --csv matches.csv
    python manage.py match_donors 42 --notify 5
"""

from django.apps import apps
from django.core.management.base import BaseCommand, CommandError
import pandas as pd

from algorithms.exceptions import MatchingError
from hospitals.models import BloodRequest

COLUMNS = ['donor_id', 'name', 'blood_type', 'distance_km', 'priority_score', 'eligible', 'reasons']


def candidates_frame(candidates):
    """Flatten MatchCandidates into a DataFrame, one row per donor"""
    rows = [
        {
            'donor_id': candidate.donor_id,
            'name': candidate.donor.full_name,
            'blood_type': candidate.donor.blood_type,
            'distance_km': round(candidate.distance_km, 2) if candidate.distance_km is not None else None,
            'priority_score': round(candidate.priority_score, 1),
            'eligible': candidate.is_eligible,
            'reasons': '; '.join(candidate.eligibility.reasons),
        }
        for candidate in candidates
    ]
    return pd.DataFrame(rows, columns=COLUMNS)


class Command(BaseCommand):
    help = 'Rank compatible donors for a blood request, optionally notifying the best ones'

    def add_arguments(self, parser):
        parser.add_argument('request_id', type=int, help='Blood request id')
        parser.add_argument('--radius', type=float, default=None, help='Search radius in km')
        parser.add_argument('--eligible-only', action='store_true', help='Hide ineligible donors')
        parser.add_argument('--csv', type=str, default=None, help='Write the ranking to this CSV file')
        parser.add_argument('--notify', type=int, default=0, metavar='N',
                            help='Notify the top N eligible donors')

    def handle(self, *args, **options):
        try:
            blood_request = BloodRequest.objects.select_related('hospital').get(pk=options['request_id'])
        except BloodRequest.DoesNotExist:
            raise CommandError(f"Blood request {options['request_id']} not found")

        engine = apps.get_app_config('api').engine

        self.stdout.write("=" * 70)
        self.stdout.write(self.style.SUCCESS(
            f"🩸 MATCHING {blood_request.blood_type} ({blood_request.urgency}) for {blood_request.hospital}"
        ))
        self.stdout.write("=" * 70)

        try:
            candidates = engine.find_matching_donors(
                blood_request,
                search_radius_km=options['radius'],
                include_ineligible=not options['eligible_only'],
            )
        except MatchingError as exc:
            raise CommandError(str(exc))

        df = candidates_frame(candidates)
        if df.empty:
            self.stdout.write(self.style.WARNING('⚠️  No compatible donors found'))
        else:
            self.stdout.write(df.to_string(index=False))
            self.stdout.write(f"\n📊 {int(df['eligible'].sum())} eligible of {len(df)} compatible donors")

        if options['csv']:
            df.to_csv(options['csv'], index=False)
            self.stdout.write(self.style.SUCCESS(f"✅ Ranking written to {options['csv']}"))

        if options['notify']:
            eligible = [candidate for candidate in candidates if candidate.is_eligible][:options['notify']]
            try:
                result = engine.dispatch(blood_request, eligible)
            except MatchingError as exc:
                raise CommandError(str(exc))
            self.stdout.write(self.style.SUCCESS(f"✅ Notified {len(result.notifications)} donors"))
            for failure in result.failures:
                self.stdout.write(self.style.ERROR(f"❌ Donor {failure.donor_id}: {failure.error}"))
