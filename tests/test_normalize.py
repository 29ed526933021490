import unittest

from cdxstats.content_type import NormalizeOptions
from cdxstats.normalize import (
    RecordNormalizer,
    ReplayRow,
    StatKey,
    derive_extension,
    parse_replay_line,
    sniff_separator,
    truncate_timestamp,
)


def cdx_line(urlkey: str, timestamp: str = "20220115123456", content_type: str = "text/html",
             size: str = "1234") -> str:
    return f"{urlkey} {timestamp} http://example/ {content_type} 200 DIGEST - - {size} 567 file.warc.gz"


class ExtensionTests(unittest.TestCase):
    def test_extension_is_case_folded_and_unified(self) -> None:
        self.assertEqual("jpg", derive_extension("/path/file.JPEG?x=1"))
        self.assertEqual("html", derive_extension("se,kb)/index.htm"))

    def test_missing_extension(self) -> None:
        self.assertEqual("-", derive_extension("/path/noext"))
        self.assertEqual("-", derive_extension("se,kb)/"))

    def test_extension_needs_a_letter(self) -> None:
        self.assertEqual("-", derive_extension("/a.1"))
        self.assertEqual("mp3", derive_extension("/a.mp3"))

    def test_extension_length_is_limited(self) -> None:
        self.assertEqual("-", derive_extension("/archive.tarball"))
        self.assertEqual("woff2", derive_extension("/font.woff2"))

    def test_query_string_is_ignored(self) -> None:
        self.assertEqual("-", derive_extension("/search?q=file.pdf"))
        self.assertEqual("php", derive_extension("/index.php?id=1"))


class TimestampTests(unittest.TestCase):
    def test_month_bucket(self) -> None:
        self.assertEqual("202201", truncate_timestamp("20220115123456"))

    def test_year_bucket(self) -> None:
        self.assertEqual("2022", truncate_timestamp("20220115123456", year=True))

    def test_short_timestamps_are_kept(self) -> None:
        self.assertEqual("202201", truncate_timestamp("202201"))


class LiveNormalizerTests(unittest.TestCase):
    def setUp(self) -> None:
        self.normalizer = RecordNormalizer()

    def test_regular_record(self) -> None:
        key, size = self.normalizer.normalize_live(cdx_line("se,kb)/a/b.html"), "coll")
        self.assertEqual(StatKey("coll", "se", "kb", "202201", "text/html", "html"), key)
        self.assertEqual(1234, size)

    def test_quotes_are_stripped(self) -> None:
        key, _ = self.normalizer.normalize_live(cdx_line('"se,kb)/x.pdf"', content_type='"application/pdf"'), "c")
        self.assertEqual(StatKey("c", "se", "kb", "202201", "application/pdf", "pdf"), key)

    def test_ip_domain_and_empty_type(self) -> None:
        line = "192.168.1.1)/img.png 20220101000000 http://192.168.1.1/img.png  200 - - - 10 0 f.warc.gz"
        key, size = self.normalizer.normalize_live(line, "c")
        self.assertEqual("IP", key.tld)
        self.assertEqual("", key.sld)
        self.assertEqual("-", key.content_type)
        self.assertEqual("png", key.extension)
        self.assertEqual(10, size)

    def test_top_level_only_domain(self) -> None:
        key, _ = self.normalizer.normalize_live(cdx_line("se)/"), "c")
        self.assertEqual(("se", ""), (key.tld, key.sld))

    def test_punycode_domain(self) -> None:
        key, _ = self.normalizer.normalize_live(cdx_line("se,xn--sk-fka)/"), "c")
        self.assertEqual(("se", "xn--sk-fka"), (key.tld, key.sld))

    def test_dns_records_are_skipped(self) -> None:
        self.assertIsNone(self.normalizer.normalize_live(cdx_line("dns:kb.se"), "c"))
        self.assertEqual(1, self.normalizer.records_skipped)

    def test_non_numeric_size_counts_as_zero(self) -> None:
        with self.assertLogs("cdxstats.normalize", level="WARNING") as logs:
            key, size = self.normalizer.normalize_live(cdx_line("se,kb)/", size="-"), "c")
        self.assertEqual(0, size)
        self.assertEqual("kb", key.sld)
        self.assertEqual(1, self.normalizer.records_malformed)
        self.assertIn("BAD DATA", logs.output[0])

    def test_unexpected_domain_uses_previous_pair(self) -> None:
        self.normalizer.normalize_live(cdx_line("se,kb)/"), "c")
        with self.assertLogs("cdxstats.normalize", level="WARNING") as logs:
            key, _ = self.normalizer.normalize_live(cdx_line("(weird)/x"), "c")
        self.assertEqual(("se", "kb"), (key.tld, key.sld))
        self.assertIn("UNEXPECTED DOMAIN", logs.output[0])

    def test_unexpected_domain_without_previous_pair_is_skipped(self) -> None:
        with self.assertLogs("cdxstats.normalize", level="WARNING") as logs:
            self.assertIsNone(self.normalizer.normalize_live(cdx_line("(weird)/x"), "c"))
        self.assertIn("UNEXPECTED DOMAIN", logs.output[0])
        self.assertEqual(1, self.normalizer.records_skipped)

        self.normalizer.reset_domain("se", "kb")
        with self.assertLogs("cdxstats.normalize", level="WARNING"):
            key, _ = self.normalizer.normalize_live(cdx_line("(weird)/x"), "c")
        self.assertEqual(("se", "kb"), (key.tld, key.sld))

    def test_extension_equal_to_domain_is_dropped_for_html(self) -> None:
        key, _ = self.normalizer.normalize_live(cdx_line("se,kb)/www.se"), "c")
        self.assertEqual("-", key.extension)
        key, _ = self.normalizer.normalize_live(cdx_line("se,kb)/www.se", content_type="text/plain"), "c")
        self.assertEqual("se", key.extension)


class ReplayParsingTests(unittest.TestCase):
    def test_sniff_separator(self) -> None:
        self.assertEqual(", ", sniff_separator('"a", "b"'))
        self.assertEqual("\t", sniff_separator('"a"\t"b"'))

    def test_current_layout(self) -> None:
        line = '"A", "se", "kb", "202201", "text/html", "html", "1", "500", "500 B"\n'
        row = parse_replay_line(line, ", ")
        self.assertEqual(
            ReplayRow(StatKey("A", "se", "kb", "202201", "text/html", "html"), 1, 500),
            row,
        )

    def test_current_layout_with_tabs_and_unquoted_numbers(self) -> None:
        line = '"A"\t"se"\t"kb"\t"2022"\t"image/png"\t"png"\t3\t900\t"900 B"'
        row = parse_replay_line(line, "\t")
        self.assertEqual(StatKey("A", "se", "kb", "2022", "image/png", "png"), row.key)
        self.assertEqual((3, 900), (row.count, row.size))

    def test_legacy_layout_without_sub_domain(self) -> None:
        row = parse_replay_line('"A", "se", "202201", "text/html", "html", "2", "700"', ", ")
        self.assertEqual(StatKey("A", "se", "*", "202201", "text/html", "html"), row.key)
        self.assertEqual((2, 700), (row.count, row.size))

    def test_legacy_layout_without_domains(self) -> None:
        row = parse_replay_line('"A", "202201", "text/html", "html", "2", "700"', ", ")
        self.assertEqual(StatKey("A", "*", "*", "202201", "text/html", "html"), row.key)

    def test_unknown_layout_is_rejected(self) -> None:
        with self.assertLogs("cdxstats.normalize", level="WARNING"):
            self.assertIsNone(parse_replay_line('"A", "B", "C"', ", "))

    def test_non_numeric_count_is_zero(self) -> None:
        with self.assertLogs("cdxstats.normalize", level="WARNING"):
            row = parse_replay_line('"A", "se", "kb", "202201", "-", "-", "x", "5", "5 B"', ", ")
        self.assertEqual((0, 5), (row.count, row.size))

    def test_replay_normalization_modes(self) -> None:
        normalizer = RecordNormalizer(NormalizeOptions(year=True, main_type=True))
        row = ReplayRow(StatKey("A", "se", "kb", "202201", "Text/HTML", "html"), 1, 5)
        normalized = normalizer.normalize_replay(row)
        self.assertEqual(StatKey("A", "se", "kb", "2022", "text", "html"), normalized.key)

    def test_replay_year_mode_keeps_year_buckets(self) -> None:
        normalizer = RecordNormalizer(NormalizeOptions(year=True))
        row = ReplayRow(StatKey("A", "se", "kb", "2022", "", "html"), 1, 5)
        normalized = normalizer.normalize_replay(row)
        self.assertEqual("2022", normalized.key.bucket)
        self.assertEqual("-", normalized.key.content_type)


if __name__ == "__main__":
    unittest.main()
