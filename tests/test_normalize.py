"""Tests for shared token normalization.

Registry keywords and context signals go through the same functions, so
these rules decide what can match at all.
"""

import pytest

from skillselect.skills.normalize import depluralize, extract_keywords, normalize_token, tokenize


class TestDepluralize:
    @pytest.mark.parametrize("plural,singular", [
        ("hooks", "hook"),
        ("components", "component"),
        ("libraries", "library"),
        ("classes", "class"),
        ("indexes", "index"),
    ])
    def test_plural_forms(self, plural, singular):
        assert depluralize(plural) == singular

    @pytest.mark.parametrize("word", ["nextjs", "redis", "express", "status", "css", "aws", "kubernetes"])
    def test_non_plurals_are_kept(self, word):
        assert depluralize(word) == word

    def test_singular_and_plural_meet(self):
        assert depluralize("caches") == depluralize("cache")


class TestTokenize:
    def test_lowercases_and_drops_stopwords(self):
        assert tokenize("Use the React Hooks with TypeScript") == ["react", "hook", "typescript"]

    def test_dotted_names_collapse(self):
        assert tokenize("Next.js and Node.js") == ["nextjs", "nodejs"]

    def test_sentence_period_is_not_a_compound(self):
        assert tokenize("Prefer React. Then Vue") == ["prefer", "react", "vue"]

    def test_keeps_language_suffixes(self):
        assert tokenize("C++ and C#") == ["c++", "c#"]

    def test_repeats_are_preserved(self):
        assert tokenize("react react") == ["react", "react"]

    def test_deterministic(self):
        text = "Best practices for Django REST APIs, including serializers and viewsets."
        assert tokenize(text) == tokenize(text)


class TestNormalizeToken:
    def test_simple(self):
        assert normalize_token("React") == "react"

    def test_scoped_package(self):
        assert normalize_token("@angular/core") == "core"

    def test_dotted_value(self):
        assert normalize_token("next.js") == "nextjs"

    def test_extension_with_leading_dot(self):
        assert normalize_token(".tsx") == "tsx"

    @pytest.mark.parametrize("value", ["", "   ", "the", "--", "7"])
    def test_nothing_meaningful(self, value):
        assert normalize_token(value) is None

    def test_agrees_with_tokenize(self):
        for word in ["Hooks", "Dockerfiles", "typescript", "Libraries"]:
            assert normalize_token(word) == tokenize(word)[0]


class TestExtractKeywords:
    def test_compound_name_contributes_parts(self):
        keywords = extract_keywords("nextjs-react-typescript", "App Router guidance")
        assert {"nextjs", "react", "typescript", "app", "router"} <= keywords

    def test_description_tokens_are_normalized(self):
        keywords = extract_keywords("react", "Components and Hooks")
        assert keywords == frozenset({"react", "component", "hook"})

    def test_extra_values(self):
        keywords = extract_keywords("drizzle", "ORM", extra=["PostgreSQL"])
        assert "postgresql" in keywords

    def test_is_frozen(self):
        assert isinstance(extract_keywords("a-b", "c"), frozenset)
