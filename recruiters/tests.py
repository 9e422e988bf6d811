from django.contrib.auth import get_user_model
from django.contrib.auth.models import AnonymousUser
from django.test import TestCase

from recruiters.models import RecruiterProfile
from recruiters.services import get_recruiter_for_user


class RecruiterContextTests(TestCase):
    def setUp(self):
        self.user = get_user_model().objects.create_user(
            username="recruiter",
            password="test-pass-123",
        )

    def test_returns_profile_linked_to_user(self):
        profile = RecruiterProfile.objects.create(
            user=self.user,
            first_name="Rita",
            last_name="Ionescu",
            email="rita@acme.test",
            company="Acme",
        )
        self.assertEqual(get_recruiter_for_user(self.user), profile)

    def test_user_without_profile_has_no_context(self):
        self.assertIsNone(get_recruiter_for_user(self.user))

    def test_anonymous_user_has_no_context(self):
        self.assertIsNone(get_recruiter_for_user(AnonymousUser()))
        self.assertIsNone(get_recruiter_for_user(None))
