import math

from app.models.game import GameDetails

SAMPLE_GENRES = ("RPG", "アドベンチャー", "シミュレーション", "アクション", "パズル")
SAMPLE_CIRCLES = (
    "月夜の魔法使い",
    "Eternal Dream",
    "PixelHeart",
    "CrystalSoft",
    "MoonLight Games",
    "StarDust Studio",
    "DreamFactory",
    "SilverWing",
    "GoldenLeaf",
)
SAMPLE_TITLES = (
    "魔界の迷宮",
    "異世界転生RPG",
    "学園アドベンチャー",
    "戦国シミュレーション",
    "探索型ダンジョン",
    "サバイバルクエスト",
    "恋愛シミュレーション",
    "謎解きアドベンチャー",
    "タワーディフェンス",
    "ローグライク",
    "カードバトル",
    "育成シミュレーション",
)


def generate_sample_games(year: int, month: int) -> list[GameDetails]:
    """Placeholder catalog for a month, identical on every call for the same month."""
    seed = year * 100 + month

    def seeded(index: int) -> float:
        x = math.sin(seed * 12345 + index * 67890) * 10000
        return x - math.floor(x)

    count = int(seeded(0) * 10) + 8
    games = []
    for i in range(count):
        day = int(seeded(i + 100) * 28) + 1
        genre = SAMPLE_GENRES[int(seeded(i + 200) * len(SAMPLE_GENRES))]
        circle = SAMPLE_CIRCLES[int(seeded(i + 300) * len(SAMPLE_CIRCLES))]
        title = SAMPLE_TITLES[int(seeded(i + 400) * len(SAMPLE_TITLES))]
        price = int(seeded(i + 500) * 2000) + 500
        game_id = f"RJ{1000000 + seed * 100 + i}"
        games.append(
            GameDetails(
                id=game_id,
                title=f"{title}～{year}年{month}月版～",
                circle=circle,
                description=f"{year}年{month}月に{circle}がリリースした{genre}ジャンルのR18 PC同人ゲームです。",
                image_url=f"https://via.placeholder.com/300x200?text={title}",
                price=price,
                release_date=f"{year:04d}-{month:02d}-{day:02d}",
                genre=genre,
                dlsite_url=f"https://www.dlsite.com/maniax/work/=/product_id/{game_id}.html",
            )
        )

    games.sort(key=lambda g: g.release_date, reverse=True)
    return games
