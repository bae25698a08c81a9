import unittest
from datetime import timedelta

import jwt
from sqlalchemy import select

from storefront.auth import AuthService
from storefront.carts import CartKey
from storefront.errors import Conflict, NotFound, Unauthorized, ValidationError
from storefront.models import Cart
from tests.support import TEST_SECRET, make_storefront


class AuthTestCase(unittest.TestCase):
    def setUp(self):
        self.storefront = make_storefront(seed=False)
        self.auth = self.storefront.auth

    def tearDown(self):
        self.storefront.close()

    # ---------- Registration ----------

    def test_register_twice_conflicts(self):
        user = self.auth.register("bob", "1234")
        self.assertEqual(user.username, "bob")
        with self.assertRaises(Conflict):
            self.auth.register("bob", "abcd")

    def test_register_validates_lengths_and_presence(self):
        with self.assertRaises(ValidationError):
            self.auth.register("bo", "1234")
        with self.assertRaises(ValidationError):
            self.auth.register("bob", "123")
        with self.assertRaises(ValidationError):
            self.auth.register(None, "1234")
        with self.assertRaises(ValidationError):
            self.auth.register("bob", "")

    def test_register_creates_an_empty_user_cart(self):
        user = self.auth.register("carol", "pass")
        with self.storefront.database.session() as session:
            cart = session.scalar(select(Cart).where(Cart.user_id == user.id))
            self.assertIsNotNone(cart)
            self.assertEqual(cart.total, 0)
            self.assertIsNone(cart.session_id)
        self.assertEqual(self.storefront.carts.get_cart(CartKey.for_user(user.id)).items, [])

    # ---------- Login & tokens ----------

    def test_login_token_decodes_to_same_user(self):
        registered = self.auth.register("bob", "1234")
        user, token = self.auth.login("bob", "1234")
        self.assertEqual(user, registered)
        decoded = self.auth.decode_token(token)
        self.assertEqual((decoded.id, decoded.username), (registered.id, "bob"))

        payload = jwt.decode(token, TEST_SECRET, algorithms=["HS256"])
        self.assertEqual(payload["exp"] - payload["iat"], 24 * 3600)

    def test_login_failures(self):
        self.auth.register("bob", "1234")
        with self.assertRaises(NotFound):
            self.auth.login("alice", "1234")
        with self.assertRaises(Unauthorized):
            self.auth.login("bob", "12345")
        with self.assertRaises(ValidationError):
            self.auth.login("bob", None)

    def test_expired_and_foreign_tokens_are_rejected(self):
        user = self.auth.register("bob", "1234")
        expired = AuthService(self.storefront.database, secret=TEST_SECRET, token_ttl=timedelta(seconds=-5))
        with self.assertRaises(Unauthorized):
            self.auth.decode_token(expired.issue_token(user))

        foreign = AuthService(self.storefront.database, secret="another-secret")
        with self.assertRaises(Unauthorized):
            self.auth.decode_token(foreign.issue_token(user))

        with self.assertRaises(Unauthorized):
            self.auth.decode_token("not-a-token")

    def test_user_from_header(self):
        self.auth.register("bob", "1234")
        _, token = self.auth.login("bob", "1234")
        self.assertEqual(self.auth.user_from_header(f"Bearer {token}").username, "bob")
        self.assertIsNone(self.auth.user_from_header(None))
        self.assertIsNone(self.auth.user_from_header("Basic Ym9iOjEyMzQ="))
        with self.assertRaises(Unauthorized):
            self.auth.user_from_header("Bearer garbage")


if __name__ == "__main__":
    unittest.main()
