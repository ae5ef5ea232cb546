from django.core.management.base import BaseCommand, CommandError

from core.models import User
from core.services.auth_service import AuthService
from core.services.base_service import ServiceError



class Command(BaseCommand):
    help = 'Create a POS user bound to a branch and print an API token'

    def add_arguments(self, parser):
        parser.add_argument('email')
        parser.add_argument('--first-name', default='POS')
        parser.add_argument('--last-name', default='')
        parser.add_argument('--password', required=True)
        parser.add_argument('--role', default=User.RoleChoices.CASHIER, choices=User.RoleChoices.values)
        parser.add_argument('--branch', type=int, help='Branch id (not used for admins)')

    def handle(self, *args, **options):
        try:
            user = AuthService.create_user(
                first_name=options['first_name'],
                last_name=options['last_name'],
                email=options['email'],
                password=options['password'],
                role=options['role'],
                branch_id=options['branch'],
            )
        except ServiceError as e:
            raise CommandError(e.message)

        self.stdout.write(self.style.SUCCESS(f'Created {user.role} {user.email} (id={user.id})'))
        self.stdout.write(AuthService.generate_token(user))
