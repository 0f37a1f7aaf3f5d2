import numpy as np

_Q = np.sqrt(21.0)

C = np.array([
    0.0,
    1.0,
    1.0 / 2.0,
    2.0 / 3.0,
    (7.0 - _Q) / 14.0,
    (7.0 + _Q) / 14.0,
    1.0,
], dtype=np.float64)

A = np.zeros((7, 7), dtype=np.float64)
A[1, :1] = [1.0]
A[2, :2] = [3.0 / 8.0, 1.0 / 8.0]
A[3, :3] = [8.0 / 27.0, 2.0 / 27.0, 8.0 / 27.0]
A[4, :4] = [(-21.0 + 9.0 * _Q) / 392.0,
            (-56.0 + 8.0 * _Q) / 392.0,
            (336.0 - 48.0 * _Q) / 392.0,
            (-63.0 + 3.0 * _Q) / 392.0]
A[5, :5] = [(-1155.0 - 255.0 * _Q) / 1960.0,
            (-280.0 - 40.0 * _Q) / 1960.0,
            (-320.0 * _Q) / 1960.0,
            (63.0 + 363.0 * _Q) / 1960.0,
            (2352.0 + 392.0 * _Q) / 1960.0]
A[6, :6] = [(330.0 + 105.0 * _Q) / 180.0,
            120.0 / 180.0,
            (-200.0 + 280.0 * _Q) / 180.0,
            (126.0 - 189.0 * _Q) / 180.0,
            (-686.0 - 126.0 * _Q) / 180.0,
            (490.0 - 70.0 * _Q) / 180.0]

B = np.array([1.0 / 20.0, 0.0, 16.0 / 45.0, 0.0, 49.0 / 180.0, 49.0 / 180.0, 1.0 / 20.0], dtype=np.float64)

# Fifth degree continuous extension (powers theta .. theta**5).
P = np.array([
    [1.0, -27.0 / 5.0, 12.0, -47.0 / 4.0, 21.0 / 5.0],
    [0.0, 0.0, 0.0, 0.0, 0.0],
    [0.0, -104.0 / 15.0, 320.0 / 9.0, -152.0 / 3.0, 112.0 / 5.0],
    [0.0, 162.0 / 25.0, -162.0 / 5.0, 243.0 / 5.0, -567.0 / 25.0],
    [0.0, (833.0 + 343.0 * _Q) / 300.0, (-637.0 - 357.0 * _Q) / 90.0,
     (392.0 + 287.0 * _Q) / 60.0, (-49.0 - 49.0 * _Q) / 25.0],
    [0.0, (833.0 - 343.0 * _Q) / 300.0, (-637.0 + 357.0 * _Q) / 90.0,
     (392.0 - 287.0 * _Q) / 60.0, (-49.0 + 49.0 * _Q) / 25.0],
    [0.0, 3.0 / 10.0, -1.0, 3.0 / 4.0, 0.0],
], dtype=np.float64)
