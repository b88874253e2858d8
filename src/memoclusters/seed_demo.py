"""JSON のデモデータ（クラスタ＋カード）を SQLite ストアへ流し込むユーティリティ。"""

from __future__ import annotations

import argparse
import json
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Sequence

from .store.sqlite_store import SQLiteCardStore


@dataclass(frozen=True)
class DemoCluster:
    """JSON から読み込んだクラスタ 1 件分。"""

    title: str
    description: str = ""
    cards: list[tuple[str, str]] = field(default_factory=list)


def load_demo_clusters(path: Path) -> list[DemoCluster]:
    """`[{"title", "description", "cards": [{"front", "back"}]}]` 形式を読み込む。

    front/back のどちらかが空のカードは読み飛ばす。
    """

    if not path.exists():
        raise FileNotFoundError(f"demo file not found: {path}")
    data = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(data, list):
        raise ValueError("demo file must contain a JSON list of clusters")

    clusters: list[DemoCluster] = []
    for raw in data:
        if not isinstance(raw, dict):
            continue
        title = str(raw.get("title") or "").strip()
        if not title:
            continue
        cards: list[tuple[str, str]] = []
        for item in raw.get("cards") or []:
            if not isinstance(item, dict):
                continue
            front = str(item.get("front") or "").strip()
            back = str(item.get("back") or "").strip()
            if front and back:
                cards.append((front, back))
        clusters.append(
            DemoCluster(title=title, description=str(raw.get("description") or "").strip(), cards=cards)
        )
    return clusters


def seed_store(store: SQLiteCardStore, user_id: str, clusters: Sequence[DemoCluster]) -> tuple[int, int]:
    """Insert clusters and their cards. Returns (cluster count, card count)."""

    card_count = 0
    for demo in clusters:
        cluster = store.create_cluster(user_id, demo.title, demo.description)
        for front, back in demo.cards:
            store.create_card(cluster.id, front, back, user_id=user_id)
            card_count += 1
    return len(clusters), card_count


def _build_parser() -> argparse.ArgumentParser:
    from .config import settings

    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("file", type=Path, help="投入するデモデータ（JSON）のパス")
    parser.add_argument(
        "--db-path",
        default=settings.db_path,
        help=f"投入先 SQLite DB のパス（既定: {settings.db_path}）",
    )
    parser.add_argument(
        "--user-id",
        default=settings.default_user_id,
        help="クラスタの所有者ID",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="件数のみ表示し、DB には書き込まない。",
    )
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    try:
        clusters = load_demo_clusters(args.file)
    except (FileNotFoundError, ValueError, json.JSONDecodeError) as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1

    if args.dry_run:
        total_cards = sum(len(c.cards) for c in clusters)
        print(f"[dry-run] clusters={len(clusters)} cards={total_cards}")
        return 0

    store = SQLiteCardStore(args.db_path)
    n_clusters, n_cards = seed_store(store, args.user_id, clusters)
    print(f"seeded clusters={n_clusters} cards={n_cards} into {args.db_path}")
    return 0


def _cli() -> None:
    raise SystemExit(main())


if __name__ == "__main__":
    _cli()
