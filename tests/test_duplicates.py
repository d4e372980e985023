"""
Duplicate detection priority over national id, email and phone.
Run from the project root: python -m pytest tests/test_duplicates.py -v
"""
import unittest

from domain.errors import DuplicateIdentityError
from repositories.memory import InMemoryApplicationRepository
from services.duplicates import DuplicateDetector, DuplicateType
from tests.factories import fixed_clock, new_application


class TestDuplicateDetector(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.clock = fixed_clock()
        self.repository = InMemoryApplicationRepository(self.clock)
        await self.repository.save(new_application(self.clock))
        self.detector = DuplicateDetector(self.repository)

    async def test_no_duplicate(self):
        result = await self.detector.detect_duplicate_type("999999999", "new@example.com", "+31600000000")
        self.assertEqual(result, DuplicateType.NONE)
        self.assertFalse(await self.detector.has_duplicates("999999999", "new@example.com", "+31600000000"))

    async def test_national_id_wins_over_email_and_phone(self):
        result = await self.detector.detect_duplicate_type("123456782", "anna@example.com", "+31612345678")
        self.assertEqual(result, DuplicateType.SSN)

    async def test_email_before_phone(self):
        result = await self.detector.detect_duplicate_type("999999999", "anna@example.com", "+31612345678")
        self.assertEqual(result, DuplicateType.EMAIL)

    async def test_phone_only(self):
        result = await self.detector.detect_duplicate_type("999999999", "new@example.com", "+31612345678")
        self.assertEqual(result, DuplicateType.PHONE)

    async def test_detect_all_collects_every_match(self):
        found = await self.detector.detect_all_duplicates("123456782", "new@example.com", "+31612345678")
        self.assertEqual(found, [DuplicateType.SSN, DuplicateType.PHONE])

    async def test_check_raises_with_display_name(self):
        with self.assertRaises(DuplicateIdentityError) as ctx:
            await self.detector.check_duplicates("999999999", "anna@example.com", "+31600000000")
        self.assertEqual(ctx.exception.duplicate_type, "EMAIL")
        self.assertEqual(str(ctx.exception), "Customer with this Email already exists in the system")

    async def test_none_inputs_are_rejected(self):
        with self.assertRaises(ValueError):
            await self.detector.detect_duplicate_type(None, "a@b.c", "+31600000000")
        with self.assertRaises(ValueError):
            await self.detector.detect_all_duplicates("1", "a@b.c", None)


if __name__ == "__main__":
    unittest.main()
