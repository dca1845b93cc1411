import unittest

import ctpsim.point

class TestPointClass(unittest.TestCase):

    def test_constructor(self):
        p = ctpsim.point.Point(1, 2)

        self.assertEqual(p.x, 1, "sanity check constructor")
        self.assertEqual(p.y, 2, "sanity check constructor")

        p = ctpsim.point.Point(4.0, 5.0)
        self.assertIsInstance(p.x, int, "coordinates are integers")
        self.assertIsInstance(p.y, int, "coordinates are integers")

    def test_equality(self):
        self.assertEqual(ctpsim.point.Point(3, 4), ctpsim.point.Point(3, 4), "same coordinates, same point")
        self.assertNotEqual(ctpsim.point.Point(3, 4), ctpsim.point.Point(4, 3), "different coordinates")
        positions = {ctpsim.point.Point(3, 4), ctpsim.point.Point(3, 4)}
        self.assertEqual(len(positions), 1, "points are usable as set members")

    def test_euclidean_distance(self):
        message = "sanity-checking our euclidean distance calculation"
        # test some pythagorean triple triangles https://en.wikipedia.org/wiki/Pythagorean_triple
        # (3, 4, 5)
        # x diff: 3
        # y diff: 4
        p1 = ctpsim.point.Point(-1, -1)
        p2 = ctpsim.point.Point(2, 3)
        self.assertEqual(p1.euclidean_distance(p2), 5.0, message)
        self.assertEqual(p2.euclidean_distance(p1), 5.0, message+", and commutativity")

        # (5, 12, 13)
        # x diff: 5
        # y diff: 12
        p1 = ctpsim.point.Point(-1, -1)
        p2 = ctpsim.point.Point(4, 11)
        self.assertEqual(p1.euclidean_distance(p2), 13.0, message)
        self.assertEqual(p2.euclidean_distance(p1), 13.0, message+", and commutativity")

        p1 = ctpsim.point.Point(7, 7)
        self.assertEqual(p1.euclidean_distance(p1), 0.0, "distance to itself")

if __name__ == '__main__':
    unittest.main()
