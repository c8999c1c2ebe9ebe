from __future__ import annotations


class NewsdeskError(Exception):
    pass


class SourceUnreachable(NewsdeskError):
    def __init__(self, source: str, reason: str) -> None:
        super().__init__(f"{source}: {reason}")
        self.source = source
        self.reason = reason


class UnsupportedSourceKind(NewsdeskError):
    def __init__(self, kind: str) -> None:
        super().__init__(f"unsupported source kind: {kind}")
        self.kind = kind


class SourceNotFound(NewsdeskError):
    def __init__(self, name: str) -> None:
        super().__init__(f"source_not_found: {name}")
        self.name = name


class ArticleNotFound(NewsdeskError):
    def __init__(self, article_id: str) -> None:
        super().__init__(f"article_not_found: {article_id}")
        self.article_id = article_id


class PersistenceFailure(NewsdeskError):
    pass


class AnalysisDegraded(NewsdeskError):
    pass
