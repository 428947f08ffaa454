import unittest

from print_bridge.errors import ValidationError
from print_bridge.printers.cpcl import encode_cpcl, extract_cpcl_bitmap
from print_bridge.printers.raster import MonochromeBitmap

DOT = MonochromeBitmap(10, 3, bytes([0x80, 0, 0, 0, 0, 0]))


class TestEncodeCpcl(unittest.TestCase):

    def test_hex_command(self):
        command = encode_cpcl(DOT)
        self.assertEqual(command.format, 'cpcl')
        self.assertEqual(command.bytes_per_row, 2)
        self.assertEqual(command.width, 10)
        self.assertEqual(
            command.payload,
            b'! 0 200 200 3 1\r\n'
            b'EG 2 3 0 0 800000000000\r\n'
            b'FORM\r\n'
            b'PRINT\r\n'
        )

    def test_offset_and_copies(self):
        command = encode_cpcl(DOT, x=8, y=5, copies=2)
        self.assertTrue(command.payload.startswith(b'! 0 200 200 8 2\r\n'))
        self.assertIn(b'EG 2 3 8 5 ', command.payload)

    def test_binary_encoding(self):
        command = encode_cpcl(DOT, encoding='binary')
        self.assertIn(b'CG 2 3 0 0 \x80\x00\x00\x00\x00\x00\r\n', command.payload)

    def test_extract_bitmap(self):
        data = bytes(range(0x20, 0x20 + 12))
        bitmap = MonochromeBitmap(24, 4, data)
        for encoding in ('hex', 'binary'):
            with self.subTest(encoding=encoding):
                command = encode_cpcl(bitmap, encoding=encoding)
                self.assertEqual(extract_cpcl_bitmap(command.payload), data)
                self.assertEqual(len(extract_cpcl_bitmap(command.payload)),
                                 bitmap.bytes_per_row * bitmap.height)

    def test_rejects_bad_input(self):
        with self.assertRaises(ValidationError):
            encode_cpcl(DOT, encoding='base64')
        with self.assertRaises(ValidationError):
            encode_cpcl(MonochromeBitmap(10, 3, b'\x80'))
        with self.assertRaises(ValidationError):
            extract_cpcl_bitmap(b'! 0 200 200 3 1\r\nFORM\r\nPRINT\r\n')


if __name__ == '__main__':
    unittest.main()
