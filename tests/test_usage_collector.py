"""
Tests for UsageCollector: hardcoded values, token references, components,
diagnostics for unreadable files.
"""

import threading

import pytest

from collectors.config import UsageCollectorConfig
from collectors.errors import FileReadError
from collectors.models import UsageKind
from collectors.results import CollectorStatus
from collectors.usages import Taxonomy, UsageCollector, normalize_token_name


def collect(root, **options):
    return UsageCollector(UsageCollectorConfig(project_root=root, **options)).collect()


class TestHardcodedValues:

    def test_raw_hex_color_is_one_hardcoded_usage(self, temp_dir, write_file):
        write_file("styles/button.css", ".button {\n  color: #ff0000;\n}\n")

        result = collect(temp_dir)

        assert result.token_usages == []
        [usage] = result.hardcoded_values
        assert usage.usage_kind == UsageKind.HARDCODED
        assert usage.token == "#ff0000"
        assert usage.source == "hex-color"
        assert (usage.path, usage.line, usage.column) == ("styles/button.css", 2, 10)
        assert usage.context == "color: #ff0000;"

    def test_rgb_and_hsl_literals(self, temp_dir, write_file):
        write_file("a.css", "a {\n  color: rgba(0, 0, 0, 0.5);\n  background: hsl(210, 40%, 96%);\n}\n")

        result = collect(temp_dir)

        assert [(u.source, u.token) for u in result.hardcoded_values] == [
            ("rgb-color", "rgba(0,0,0,0.5)"),
            ("hsl-color", "hsl(210,40%,96%)"),
        ]

    def test_tailwind_arbitrary_value_is_not_counted_twice(self, temp_dir, write_file):
        write_file("src/Card.tsx", 'export const Card = () => <div className="bg-[#fafafa] p-4" />;\n')

        result = collect(temp_dir)

        [usage] = result.hardcoded_values
        assert usage.source == "tailwind-arbitrary"
        assert usage.token == "#fafafa"
        assert usage.raw == "bg-[#fafafa]"

    def test_spacing_literals_only_on_spacing_declarations(self, temp_dir, write_file):
        write_file("a.scss", ".card {\n  padding: 8px 1.5rem;\n  width: 320px;\n  margin-top: -4px;\n}\n")

        result = collect(temp_dir)

        spacing = [(u.line, u.token) for u in result.hardcoded_values if u.source == "spacing"]
        assert spacing == [(2, "8px"), (2, "1.5rem"), (4, "-4px")]

    def test_matches_in_comments_are_ignored(self, temp_dir, write_file):
        write_file("a.ts", "// brand used to be #ff0000\nconst x = 1; /* #00ff00 */\nconst y = '#0000ff';\n")

        result = collect(temp_dir)

        assert [(u.line, u.token) for u in result.hardcoded_values] == [(3, "#0000ff")]

    def test_comment_markers_inside_strings_are_not_comments(self, temp_dir, write_file):
        write_file("a.ts", 'glob("icons/*.svg"); const c = "#ff0000";\nconst u = "//cdn"; const d = "#00ff00";\n')

        result = collect(temp_dir)

        assert [(u.line, u.token) for u in result.hardcoded_values] == [(1, "#ff0000"), (2, "#00ff00")]

    def test_protocol_relative_url_is_not_a_comment(self, temp_dir, write_file):
        write_file("a.css", ".hero {\n  background: url(//cdn.example.com/x.png) #123456;\n}\n")

        result = collect(temp_dir)

        assert [(u.line, u.token) for u in result.hardcoded_values] == [(2, "#123456")]

    def test_html_entities_are_not_colors(self, temp_dir, write_file):
        write_file("a.tsx", "export const A = () => <p>&#123;</p>;\n")

        assert collect(temp_dir).hardcoded_values == []


class TestTokenReferences:

    def test_css_variable_reference(self, temp_dir, write_file):
        write_file("a.css", ".a {\n  color: var(--color-primary);\n  margin: var( --space-2 , 8px);\n}\n")

        result = collect(temp_dir)

        assert [(u.token, u.source, u.line) for u in result.token_usages] == [
            ("color-primary", "css-var", 2),
            ("space-2", "css-var", 3),
        ]
        assert all(u.usage_kind == UsageKind.TOKEN_REFERENCE for u in result.token_usages)

    def test_scss_usages_but_not_definitions(self, temp_dir, write_file):
        write_file("a.scss", "$brand: #ff0000;\n.a {\n  color: $brand;\n}\n")

        result = collect(temp_dir)

        assert [(u.token, u.line) for u in result.token_usages] == [("brand", 3)]
        assert [u.token for u in result.hardcoded_values] == ["#ff0000"]

    def test_js_token_member_paths(self, temp_dir, write_file):
        write_file("src/a.ts", "const c = tokens.colors.primary;\nconst s = theme.spacing;\n")

        result = collect(temp_dir)

        assert [(u.token, u.source) for u in result.token_usages] == [
            ("colors.primary", "js-token"),
            ("spacing", "js-token"),
        ]

    def test_taxonomy_filters_references(self, temp_dir, write_file):
        write_file("a.css", ".a {\n  color: var(--brand);\n  background: var(--random);\n}\n")

        result = collect(temp_dir, token_patterns=["--brand"])

        assert [u.token for u in result.token_usages] == ["brand"]

    def test_semantic_tailwind_classes_count_as_token_usage(self, temp_dir, write_file):
        write_file("app/page.tsx", (
            "export function Page() {\n"
            "  return (\n"
            '    <div className="bg-surface text-foreground dark:hover:bg-surface/80">\n'
            "      Hello\n"
            "    </div>\n"
            "  );\n"
            "}\n"
        ))

        result = collect(temp_dir, token_patterns=["--surface", "--foreground"])

        names = [u.token for u in result.token_usages]
        assert names == ["surface", "foreground", "surface"]
        assert all(u.source == "tailwind" for u in result.token_usages)

    def test_tw_prefixed_taxonomy_names(self, temp_dir, write_file):
        write_file("app/page.tsx", '<div className="bg-surface text-foreground" />\n')

        result = collect(temp_dir, token_patterns=["tw-surface", "tw-foreground"])

        assert {u.token for u in result.token_usages} == {"surface", "foreground"}

    def test_palette_classes_are_not_semantic_tokens(self, temp_dir, write_file):
        write_file("components/Button.tsx", '<button className="bg-slate-900 text-white">OK</button>\n')

        result = collect(temp_dir, token_patterns=["--surface", "--foreground"])

        assert result.token_usages == []

    def test_without_taxonomy_no_tailwind_class_is_a_token(self, temp_dir, write_file):
        write_file("a.tsx", '<div className="bg-surface" />\n')

        assert collect(temp_dir).token_usages == []


class TestComponentUsages:

    def test_component_with_scope_props_and_children(self, temp_dir, write_file):
        write_file("src/pages/Home.tsx", (
            "import { Button } from '../components/Button';\n"
            "\n"
            "export default function Home() {\n"
            "  const items: Array<Item> = [];\n"
            "  return (\n"
            '    <Button variant="primary" size={size} disabled onClick={() => go(1 > 0)}>Go</Button>\n'
            "  );\n"
            "}\n"
            "\n"
            "export const Footer = () => <Icon name=\"x\" />;\n"
        ))

        result = collect(temp_dir)

        button, icon = result.component_usages
        assert (button.component, button.line, button.column) == ("Button", 6, 5)
        assert button.enclosing_scope == "Home"
        assert button.props_used == ["variant", "size", "disabled", "onClick"]
        assert button.has_children is True

        assert (icon.component, icon.enclosing_scope) == ("Icon", "Footer")
        assert icon.props_used == ["name"]
        assert icon.has_children is False

    def test_multiline_tag_has_unknown_children(self, temp_dir, write_file):
        write_file("a.jsx", "const A = () => (\n  <Dialog\n    open\n  />\n);\n")

        [usage] = collect(temp_dir).component_usages

        assert usage.component == "Dialog"
        assert usage.has_children is None

    def test_react_wrappers_and_generics_are_skipped(self, temp_dir, write_file):
        write_file("a.tsx", (
            "const ctx = createContext<Theme>(null);\n"
            "export const App = () => (\n"
            "  <React.StrictMode><ThemeContext.Provider value={t}><Fragment><Page /></Fragment>"
            "</ThemeContext.Provider></React.StrictMode>\n"
            ");\n"
        ))

        result = collect(temp_dir)

        assert [u.component for u in result.component_usages] == ["Page"]

    def test_components_only_in_markup_files(self, temp_dir, write_file):
        write_file("a.ts", "const html = '<Button />';\n")

        assert collect(temp_dir).component_usages == []

    def test_component_taxonomy(self, temp_dir, write_file):
        write_file("a.tsx", "export const A = () => <><Button /><Card /><CardHeader /></>;\n")

        result = collect(temp_dir, component_patterns=["Card*"])

        assert [u.component for u in result.component_usages] == ["Card", "CardHeader"]


class TestCollectorBehaviour:

    def test_file_without_matches_yields_nothing(self, temp_dir, write_file):
        write_file("src/math.ts", "export const add = (a: number, b: number) => a + b;\n")

        result = collect(temp_dir)

        assert result.status == CollectorStatus.COMPLETE
        assert result.scanned_files == ["src/math.ts"]
        assert result.stats() == {
            "files_scanned": 1, "token_usages": 0, "hardcoded_values": 0, "component_usages": 0,
        }

    def test_undecodable_file_becomes_diagnostic(self, temp_dir, write_file):
        write_file("good.css", "a { color: #fff; }\n")
        write_file("bad.css", b"a { color: \xff\xfe; }\n", binary=True)

        result = collect(temp_dir)

        assert result.status == CollectorStatus.PARTIAL
        assert result.scanned_files == ["good.css"]
        [diagnostic] = result.diagnostics
        assert diagnostic.code == FileReadError.code
        assert diagnostic.path == "bad.css"
        assert [u.token for u in result.hardcoded_values] == ["#fff"]

    def test_results_are_ordered_by_path(self, temp_dir, write_file):
        for name in ["c.css", "a.css", "b.css"]:
            write_file(f"styles/{name}", "a { color: #123456; }\n")

        result = collect(temp_dir, max_workers=2)

        assert [u.path for u in result.hardcoded_values] == ["styles/a.css", "styles/b.css", "styles/c.css"]

    def test_excluded_directories_are_not_scanned(self, temp_dir, write_file):
        write_file("node_modules/lib/index.css", "a { color: #fff; }\n")
        write_file("dist/out.css", "a { color: #fff; }\n")
        write_file("src/a.css", "a { color: #fff; }\n")

        assert collect(temp_dir).scanned_files == ["src/a.css"]

    def test_cancelled_before_start_is_partial(self, temp_dir, write_file):
        write_file("a.css", "a { color: #fff; }\n")
        cancel = threading.Event()
        cancel.set()

        result = UsageCollector(UsageCollectorConfig(project_root=temp_dir)).collect(cancel)

        assert result.status == CollectorStatus.PARTIAL
        assert result.scanned_files == []


class TestSpecializedLookups:

    @pytest.fixture
    def collector(self, temp_dir, write_file):
        write_file("a.css", ".a {\n  color: var(--brand);\n  background: #ffffff;\n  padding: 4px;\n}\n")
        write_file("b.tsx", 'export const B = () => <Card className="bg-[rgb(0,0,0)]" />;\n')
        return UsageCollector(UsageCollectorConfig(project_root=temp_dir))

    def test_find_hardcoded_colors(self, collector):
        colors = collector.find_hardcoded_colors()

        assert [(u.path, u.token) for u in colors] == [("a.css", "#ffffff"), ("b.tsx", "rgb(0,0,0)")]

    def test_find_css_variable_usages(self, collector):
        assert [u.token for u in collector.find_css_variable_usages()] == ["brand"]

    def test_find_token_usages(self, collector):
        assert [u.token for u in collector.find_token_usages("--brand")] == ["brand"]
        assert collector.find_token_usages("--missing") == []

    def test_find_component_usages(self, collector):
        assert [u.component for u in collector.find_component_usages("Card")] == ["Card"]
        assert collector.find_component_usages("Button") == []


class TestTaxonomy:

    @pytest.mark.parametrize("raw,expected", [
        ("--Color-Primary", "color-primary"),
        ("$brand", "brand"),
        ("tw-surface", "surface"),
        ("--tw-ring", "ring"),
        ("spacing", "spacing"),
    ])
    def test_normalize_token_name(self, raw, expected):
        assert normalize_token_name(raw) == expected

    def test_patterns_are_globs(self):
        taxonomy = Taxonomy(["--color-*"], normalize_token_name)

        assert taxonomy.recognizes("color-primary")
        assert not taxonomy.recognizes("space-2")

    def test_empty_taxonomy_admits_everything(self):
        taxonomy = Taxonomy([])

        assert not taxonomy
        assert taxonomy.admits("anything")
        assert not taxonomy.recognizes("anything")
