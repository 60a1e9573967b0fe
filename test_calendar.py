import unittest
import datetime

import numpy as np
import pandas as pd

import calendar_engine
from calendar_engine import (
    to_date,
    is_working_day,
    next_working_day,
    add_calendar_days,
    add_business_days,
    subtract_business_days,
    business_days_between,
)

D = datetime.date

# 2024-01-01 is a Monday
MON = D(2024, 1, 1)
FRI = D(2024, 1, 5)
SAT = D(2024, 1, 6)
SUN = D(2024, 1, 7)
NEXT_MON = D(2024, 1, 8)


class TestToDate(unittest.TestCase):

    def test_coercion(self):
        self.assertEqual(to_date("2024-01-01"), MON)
        self.assertEqual(to_date(pd.Timestamp("2024-01-01 13:45")), MON)
        self.assertEqual(to_date(datetime.datetime(2024, 1, 1, 9, 0)), MON)
        self.assertEqual(to_date(np.datetime64("2024-01-01")), MON)
        self.assertEqual(to_date(MON), MON)

    def test_missing_values(self):
        self.assertIsNone(to_date(None))
        self.assertIsNone(to_date(float("nan")))
        self.assertIsNone(to_date(pd.NaT))
        self.assertIsNone(to_date(""))
        self.assertIsNone(to_date("nan"))


class TestWorkingDays(unittest.TestCase):

    def test_default_calendar(self):
        self.assertTrue(is_working_day(MON))
        self.assertTrue(is_working_day(FRI))
        self.assertFalse(is_working_day(SAT))
        self.assertFalse(is_working_day(SUN))

    def test_resource_working_days_and_exceptions(self):
        resource = {
            "working_days": ["monday", "tuesday", "wednesday", "thursday", "friday", "saturday"],
            "calendar_exceptions": [{"date": "2024-01-08", "type": "holiday", "note": "Local holiday"}],
        }
        self.assertTrue(is_working_day(SAT, resource))
        self.assertFalse(is_working_day(SUN, resource))
        self.assertFalse(is_working_day(NEXT_MON, resource))

    def test_csv_style_resource_fields(self):
        # As read from resources.csv
        resource = {"working_days": "mon;tue;wed", "calendar_exceptions": "2024-01-02:leave"}
        self.assertTrue(is_working_day(MON, resource))
        self.assertFalse(is_working_day(D(2024, 1, 2), resource))
        self.assertFalse(is_working_day(D(2024, 1, 4), resource))  # Thursday

    def test_resource_without_working_days_uses_default(self):
        resource = {"working_days": None, "calendar_exceptions": None}
        self.assertTrue(is_working_day(MON, resource))
        self.assertFalse(is_working_day(SAT, resource))

        self.assertEqual(calendar_engine.weekmask_for({"working_days": []}), "1111100")

    def test_next_working_day(self):
        self.assertEqual(next_working_day(MON), D(2024, 1, 2))
        self.assertEqual(next_working_day(FRI), NEXT_MON)
        self.assertEqual(next_working_day(SAT), NEXT_MON)

        holiday = {"working_days": None, "calendar_exceptions": [{"date": "2024-01-08", "type": "holiday"}]}
        self.assertEqual(next_working_day(FRI, holiday), D(2024, 1, 9))


class TestCalendarDays(unittest.TestCase):

    def test_add_calendar_days_default(self):
        # Mon + 5 working days -> next Mon
        self.assertEqual(add_calendar_days(MON, 5), NEXT_MON)
        self.assertEqual(add_calendar_days(MON, 0), MON)
        self.assertEqual(add_calendar_days(FRI, 1, None), NEXT_MON)

    def test_add_calendar_days_resource(self):
        six_day_week = {"working_days": ["monday", "tuesday", "wednesday", "thursday", "friday", "saturday"]}
        self.assertEqual(add_calendar_days(FRI, 1, six_day_week), SAT)

        with_leave = {"calendar_exceptions": [{"date": "2024-01-08", "type": "leave"}]}
        self.assertEqual(add_calendar_days(FRI, 1, with_leave), D(2024, 1, 9))

    def test_add_calendar_days_negative(self):
        self.assertEqual(add_calendar_days(NEXT_MON, -1), FRI)


class TestBusinessDays(unittest.TestCase):

    def test_add(self):
        self.assertEqual(add_business_days(MON, 1), D(2024, 1, 2))
        self.assertEqual(add_business_days(FRI, 1), NEXT_MON)
        # Weekend start steps into the next working week
        self.assertEqual(add_business_days(SAT, 1), NEXT_MON)
        self.assertEqual(add_business_days(MON, 0), MON)
        self.assertEqual(add_business_days(SAT, 0), SAT)

    def test_add_negative_is_lead(self):
        self.assertEqual(add_business_days(NEXT_MON, -1), FRI)

    def test_subtract(self):
        self.assertEqual(subtract_business_days(NEXT_MON, 1), FRI)
        self.assertEqual(subtract_business_days(SUN, 1), FRI)
        self.assertEqual(subtract_business_days(FRI, 4), MON)
        self.assertEqual(subtract_business_days(FRI, 0), FRI)

    def test_between(self):
        self.assertEqual(business_days_between(MON, MON), 0)
        self.assertEqual(business_days_between(MON, D(2024, 1, 2)), 1)
        self.assertEqual(business_days_between(FRI, NEXT_MON), 1)
        self.assertEqual(business_days_between(MON, NEXT_MON), 5)
        # Never negative
        self.assertEqual(business_days_between(NEXT_MON, MON), 0)
        self.assertEqual(business_days_between(None, MON), 0)


if __name__ == '__main__':
    unittest.main()
