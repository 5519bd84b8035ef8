import os

from runner.ingest import page_ingest


def main() -> int:
    # JAMB plus the featured universities, with shorter pacing.
    os.environ["SOURCE_IDS"] = os.getenv("SOURCE_IDS", "unilag,ui,abu-zaria,unn,oau")
    os.environ["MAX_ARTICLES_PER_SOURCE"] = os.getenv("MAX_ARTICLES_PER_SOURCE", "5")
    os.environ["ARTICLE_DELAY_MS"] = os.getenv("ARTICLE_DELAY_MS", "1000")
    os.environ["SOURCE_DELAY_MS"] = os.getenv("SOURCE_DELAY_MS", "1500")
    return page_ingest.main()


if __name__ == "__main__":
    raise SystemExit(main())
