"""
Ensure the ADMIN / DOCTOR / PATIENT roles exist, optionally creating an
admin user.

Usage:
    python manage.py seed_roles
    python manage.py seed_roles --admin-email admin@example.com --admin-password secret

Idempotent: safe to run on every deployment.
"""
from django.contrib.auth import get_user_model
from django.core.management.base import BaseCommand

from apps.authz.models import Role, RoleChoices, assign_role


class Command(BaseCommand):
    help = 'Ensure roles exist and optionally bootstrap an admin user'

    def add_arguments(self, parser):
        parser.add_argument('--admin-email', default=None)
        parser.add_argument('--admin-password', default=None)

    def handle(self, *args, **options):
        self.stdout.write('Ensuring roles exist...')
        for role_choice in RoleChoices:
            role, created = Role.objects.get_or_create(name=role_choice)
            if created:
                self.stdout.write(self.style.SUCCESS(f'  Created role: {role.name}'))
            else:
                self.stdout.write(f'  - Role exists: {role.name}')

        email = options['admin_email']
        if not email:
            return

        User = get_user_model()
        user, created = User.objects.get_or_create(
            email=email,
            defaults={'is_active': True, 'is_staff': True},
        )
        if created:
            user.set_password(options['admin_password'])
            user.save()
            self.stdout.write(self.style.SUCCESS(f'  Created admin user: {email}'))
        assign_role(user, RoleChoices.ADMIN)
        self.stdout.write(self.style.SUCCESS(f'  {email} has role admin'))
