from datetime import datetime, timedelta, timezone

import jwt
from django.conf import settings
from django.test import TestCase

from core.models import Branch, User
from .fixtures import make_branch, make_user, api_client


class AuthenticationTests(TestCase):

    @classmethod
    def setUpTestData(cls):
        cls.branch = make_branch("DHK")
        cls.cashier = make_user(User.RoleChoices.CASHIER, cls.branch)

    def test_missing_token_is_rejected_with_envelope(self):
        response = api_client().get("/api/branches")
        self.assertEqual(response.status_code, 401)
        self.assertFalse(response.json()["success"])
        self.assertEqual(response.json()["error_code"], "UNAUTHORIZED")

    def test_bearer_token_authenticates(self):
        response = api_client(self.cashier, token=True).get("/api/branches")
        self.assertEqual(response.status_code, 200)
        self.assertTrue(response.json()["success"])

    def test_garbage_token_is_rejected(self):
        client = api_client()
        client.credentials(HTTP_AUTHORIZATION="Bearer not-a-jwt")
        response = client.get("/api/branches")
        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json()["error_code"], "UNAUTHORIZED")

    def test_expired_token_is_rejected(self):
        past = datetime.now(timezone.utc) - timedelta(days=1)
        token = jwt.encode(
            {"user_id": self.cashier.id, "exp": past, "iat": past - timedelta(days=1)},
            settings.JWT_SECRET_KEY,
            algorithm="HS256",
        )
        client = api_client()
        client.credentials(HTTP_AUTHORIZATION=f"Bearer {token}")
        self.assertEqual(client.get("/api/branches").status_code, 401)

    def test_suspended_user_is_rejected(self):
        user = make_user(User.RoleChoices.STAFF, self.branch)
        User.objects.filter(id=user.id).update(status=User.UserStatus.SUSPENDED)
        response = api_client(user, token=True).get("/api/branches")
        self.assertEqual(response.status_code, 401)


class BranchApiTests(TestCase):

    @classmethod
    def setUpTestData(cls):
        cls.dhaka = make_branch("DHK")
        cls.ctg = make_branch("CTG")
        cls.admin = make_user(User.RoleChoices.ADMIN)
        cls.manager = make_user(User.RoleChoices.MANAGER, cls.dhaka)

    def test_admin_lists_every_branch(self):
        response = api_client(self.admin).get("/api/branches")
        codes = {b["code"] for b in response.json()["data"]}
        self.assertEqual(codes, {"DHK", "CTG"})

    def test_manager_lists_only_own_branch(self):
        response = api_client(self.manager).get("/api/branches")
        self.assertEqual([b["code"] for b in response.json()["data"]], ["DHK"])

    def test_manager_cannot_view_other_branch(self):
        response = api_client(self.manager).get(f"/api/branches/{self.ctg.id}")
        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.json()["error_code"], "FORBIDDEN")

    def test_admin_creates_branch(self):
        response = api_client(self.admin).post(
            "/api/branches", {"name": "Sylhet", "code": "syl"}, format="json"
        )
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.json()["data"]["code"], "SYL")

    def test_duplicate_branch_code_conflicts(self):
        response = api_client(self.admin).post(
            "/api/branches", {"name": "Dhaka 2", "code": "DHK"}, format="json"
        )
        self.assertEqual(response.status_code, 409)

    def test_manager_cannot_create_branch(self):
        response = api_client(self.manager).post(
            "/api/branches", {"name": "Sylhet", "code": "SYL"}, format="json"
        )
        self.assertEqual(response.status_code, 403)
        self.assertFalse(Branch.objects.filter(code="SYL").exists())

    def test_deactivate_is_soft(self):
        response = api_client(self.admin).post(f"/api/branches/{self.ctg.id}/deactivate")
        self.assertEqual(response.status_code, 200)
        self.ctg.refresh_from_db()
        self.assertFalse(self.ctg.is_active)

        listed = api_client(self.admin).get("/api/branches").json()["data"]
        self.assertEqual([b["code"] for b in listed], ["DHK"])

    def test_unknown_branch_is_not_found(self):
        response = api_client(self.admin).get("/api/branches/9999")
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json()["error_code"], "NOT_FOUND")
