import base64
import unittest

from PIL import Image

from fakes import dot_image, png_bytes
from print_bridge.errors import ImageDecodeError, ValidationError
from print_bridge.printers.raster import MonochromeBitmap, pack_bits, rasterize


class TestPackBits(unittest.TestCase):

    def test_rows_are_padded_and_msb_first(self):
        marks = [True] + [False] * 9 + [False] * 9 + [True]
        data = pack_bits(marks, 10, 2)
        self.assertEqual(data, bytes([0x80, 0x00, 0x00, 0x40]))

    def test_bitmap_accessors(self):
        bitmap = MonochromeBitmap(10, 2, bytes([0x80, 0x00, 0x00, 0x40]))
        self.assertEqual(bitmap.bytes_per_row, 2)
        self.assertEqual(bitmap.row(1), bytes([0x00, 0x40]))
        self.assertTrue(bitmap.get_pixel(0, 0))
        self.assertTrue(bitmap.get_pixel(9, 1))
        self.assertFalse(bitmap.get_pixel(1, 0))


class TestRasterize(unittest.TestCase):

    def test_single_black_pixel(self):
        bitmap = rasterize(png_bytes(dot_image()))
        self.assertEqual((bitmap.width, bitmap.height), (10, 3))
        self.assertEqual(bitmap.bytes_per_row, 2)
        self.assertEqual(bitmap.data, bytes([0x80, 0, 0, 0, 0, 0]))

    def test_invert(self):
        bitmap = rasterize(png_bytes(dot_image()), invert=True)
        self.assertEqual(bitmap.data, bytes([0x7F, 0xC0, 0xFF, 0xC0, 0xFF, 0xC0]))

    def test_data_url_and_base64_text(self):
        encoded = base64.b64encode(png_bytes(dot_image())).decode('ascii')
        for data in (encoded, f"data:image/png;base64,{encoded}"):
            with self.subTest(data=data[:30]):
                self.assertEqual(rasterize(data).data[0], 0x80)

    def test_transparent_pixels_are_white(self):
        image = Image.new('RGBA', (8, 1), (0, 0, 0, 0))
        image.putpixel((3, 0), (0, 0, 0, 255))
        bitmap = rasterize(png_bytes(image))
        self.assertEqual(bitmap.data, bytes([0x10]))

    def test_threshold(self):
        image = Image.new('RGB', (8, 1), (100, 100, 100))
        self.assertEqual(rasterize(png_bytes(image), threshold=128).data, b'\xff')
        self.assertEqual(rasterize(png_bytes(image), threshold=50).data, b'\x00')

    def test_average_grayscale(self):
        # pure green: luminance ~150, average 85
        image = Image.new('RGB', (8, 1), (0, 255, 0))
        self.assertEqual(rasterize(png_bytes(image), grayscale='luminance').data, b'\x00')
        self.assertEqual(rasterize(png_bytes(image), grayscale='average').data, b'\xff')

    def test_resize_keeps_aspect_ratio(self):
        image = Image.new('RGB', (20, 10), (0, 0, 0))
        bitmap = rasterize(png_bytes(image), width=10)
        self.assertEqual((bitmap.width, bitmap.height), (10, 5))
        self.assertEqual(len(bitmap.data), bitmap.bytes_per_row * bitmap.height)

    def test_dithering_solid_black(self):
        image = Image.new('RGB', (16, 2), (0, 0, 0))
        bitmap = rasterize(png_bytes(image), dithering=True)
        self.assertEqual(bitmap.data, b'\xff' * 4)

    def test_invalid_image(self):
        with self.assertRaises(ImageDecodeError):
            rasterize(b'\x00\x01 definitely not an image')
        with self.assertRaises(ValidationError):
            rasterize('%%%not base64%%%')

    def test_unknown_grayscale_mode(self):
        with self.assertRaises(ValidationError):
            rasterize(png_bytes(dot_image()), grayscale='median')


if __name__ == '__main__':
    unittest.main()
