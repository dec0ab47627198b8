import unittest

from tenxdev.youtube import extract_video_id, thumbnail_url


class YoutubeTests(unittest.TestCase):
    def test_extracts_id_from_supported_links(self):
        cases = {
            "https://www.youtube.com/watch?v=dQw4w9WgXcQ": "dQw4w9WgXcQ",
            "https://youtube.com/watch?feature=share&v=dQw4w9WgXcQ": "dQw4w9WgXcQ",
            "https://m.youtube.com/watch?v=dQw4w9WgXcQ&t=42": "dQw4w9WgXcQ",
            "https://youtu.be/dQw4w9WgXcQ": "dQw4w9WgXcQ",
            "https://youtu.be/dQw4w9WgXcQ?si=abc": "dQw4w9WgXcQ",
            "https://www.youtube.com/embed/dQw4w9WgXcQ": "dQw4w9WgXcQ",
            "https://www.youtube.com/shorts/dQw4w9WgXcQ": "dQw4w9WgXcQ",
        }
        for url, expected in cases.items():
            with self.subTest(url=url):
                self.assertEqual(extract_video_id(url), expected)

    def test_rejects_other_links(self):
        for url in (
            "",
            "not a url",
            "youtube.com/watch?v=abc",
            "https://vimeo.com/12345",
            "https://www.youtube.com/channel/UC123",
            "https://youtu.be/",
        ):
            with self.subTest(url=url):
                self.assertIsNone(extract_video_id(url))

    def test_thumbnail_url(self):
        self.assertEqual(
            thumbnail_url("abc"), "https://img.youtube.com/vi/abc/hqdefault.jpg"
        )


if __name__ == "__main__":
    unittest.main()
