from numpy import sqrt

class Point:
    """
    Fixed position of a node on the simulation plane, integer coordinates
    """
    def __init__(self, x: int, y: int):
        self.x = int(x)
        self.y = int(y)

    def euclidean_distance(self, p2) -> float:
        """
        calculate the euclidean distance between this point and a
        second point p2

        p2: another Point object
        """
        x_diff = self.x - p2.x
        y_diff = self.y - p2.y
        return float(sqrt( x_diff ** 2 + y_diff ** 2 ))

    def __eq__(self, other):
        return isinstance(other, Point) and self.x == other.x and self.y == other.y

    def __hash__(self):
        return hash((self.x, self.y))

    def __repr__(self):
        return f"Point(x={self.x}, y={self.y})"
