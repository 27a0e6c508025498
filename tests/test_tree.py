from speeddial.model import ROOT_ID, Folder, Link, make_unsorted_folder
from speeddial.tree import TreeStore


def _sample_tree() -> TreeStore:
    return TreeStore(
        [
            Folder(id="work", title="Work", order=0, depth=0),
            Folder(id="docs", title="Docs", parent_id="work", order=0, depth=1),
            Folder(id="api", title="API", parent_id="docs", order=0, depth=2),
            Link(id="l1", title="Example", url="https://example.com", order=1),
            Link(id="l2", title="News", url="https://news.example", order=0),
            Link(id="l3", title="Guide", url="https://docs.example/guide", parent_id="docs", order=0),
            Link(id="l4", title="Ref", url="https://docs.example/ref", parent_id="api", order=0),
            make_unsorted_folder(),
            Folder(id="play", title="Play", order=1, depth=0),
        ]
    )


def test_children_of_lists_folders_before_links_each_by_order():
    tree = _sample_tree()
    ids = [i.id for i in tree.children_of(ROOT_ID)]
    assert ids == ["unsorted-folder", "work", "play", "l2", "l1"]


def test_unsorted_heads_root_even_with_out_of_range_order():
    tree = _sample_tree()
    tree.get("unsorted-folder").order = 99
    assert tree.children_of(ROOT_ID)[0].id == "unsorted-folder"


def test_equal_orders_keep_insertion_order():
    tree = TreeStore(
        [
            Link(id="a", title="A", url="https://a.example", order=0),
            Link(id="b", title="B", url="https://b.example", order=0),
        ]
    )
    assert [i.id for i in tree.children_of(ROOT_ID)] == ["a", "b"]


def test_next_order_is_per_type():
    tree = _sample_tree()
    assert tree.next_order(ROOT_ID, "link") == 2
    assert tree.next_order(ROOT_ID, "folder") == 2
    assert tree.next_order("api", "folder") == 0


def test_descendant_queries():
    tree = _sample_tree()
    assert tree.is_descendant("work", "api")
    assert not tree.is_descendant("api", "work")
    assert not tree.is_descendant("work", "work")
    assert tree.is_self_or_descendant("work", "work")
    assert tree.folder_descendant_count("work") == 2
    assert tree.link_count_under("work") == 2
    assert tree.total_link_count() == 4


def test_descendants_depth_first_lists_children_before_parents():
    tree = _sample_tree()
    ids = [i.id for i in tree.descendants_depth_first("work")]
    assert ids.index("l4") < ids.index("api") < ids.index("docs")
    assert set(ids) == {"docs", "api", "l3", "l4"}


def test_path_and_depth():
    tree = _sample_tree()
    assert [f.id for f in tree.path_to("api")] == ["work", "docs", "api"]
    assert tree.path_to(ROOT_ID) == []
    assert tree.depth_of(ROOT_ID) == -1
    assert tree.depth_of("api") == 2


def test_path_to_broken_chain_is_empty():
    tree = TreeStore([Folder(id="orphan", title="Orphan", parent_id="gone")])
    assert tree.path_to("orphan") == []


def test_folder_hierarchy_is_depth_annotated():
    tree = _sample_tree()
    pairs = [(f.id, d) for f, d in tree.folder_hierarchy()]
    assert pairs == [("unsorted-folder", 0), ("work", 0), ("docs", 1), ("api", 2), ("play", 0)]


def test_find_links_by_url_is_case_insensitive_and_scoped():
    tree = _sample_tree()
    assert [i.id for i in tree.find_links_by_url("HTTPS://EXAMPLE.COM")] == ["l1"]
    assert tree.find_links_by_url("https://example.com", parent_id="work") == []


def test_listeners_are_notified_and_can_unsubscribe():
    tree = _sample_tree()
    calls = []
    unsubscribe = tree.subscribe(lambda: calls.append(1))
    tree.notify_changed()
    unsubscribe()
    tree.notify_changed()
    assert calls == [1]


def test_failing_listener_does_not_block_others():
    tree = _sample_tree()
    calls = []

    def _boom():
        raise RuntimeError("boom")

    tree.subscribe(_boom)
    tree.subscribe(lambda: calls.append(1))
    tree.notify_changed()
    assert calls == [1]
